"""Stateless domain services."""

from signflow.domain.services.audit_chain_verifier import verify_audit_chain
from signflow.domain.services.signing_flow_rule import SigningFlowRule

__all__: list[str] = ["SigningFlowRule", "verify_audit_chain"]
