"""Signing oracle port.

The oracle is the authoritative external signer (a KMS or HSM). The core
performs no local verification of what it returns.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol


@dataclass(frozen=True)
class SigningResult:
    """Result of a signing request.

    Attributes:
        signature: Raw signature bytes.
        key_id: Key that produced the signature.
        algorithm: Algorithm used.
        signed_at: Timestamp reported by the oracle.
    """

    signature: bytes
    key_id: str
    algorithm: str
    signed_at: datetime


class SigningOraclePort(Protocol):
    """Protocol for the external signing service."""

    async def sign(self, content_hash: str, key_id: str, algorithm: str) -> SigningResult:
        """Sign a SHA-256 content hash.

        Args:
            content_hash: Lowercase hex SHA-256 of the document.
            key_id: Signing key identifier.
            algorithm: Signing algorithm identifier.

        Returns:
            SigningResult from the oracle.
        """
        ...
