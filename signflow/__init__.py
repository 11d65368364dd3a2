"""
signflow - multi-party electronic document signing workflow engine.

Envelopes carrying a document are routed to one or more signers in a
defined order. Each signer records consent and produces a verifiable
signature through an external signing oracle, while every state change
lands in a hash-chained audit trail and an at-least-once event outbox.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
