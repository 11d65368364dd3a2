"""HMAC signing oracle stub.

Stands in for a KMS in tests and local development. Produces a
deterministic HMAC-SHA256 over the content hash so results are stable.
"""

from __future__ import annotations

import asyncio
import hashlib
import hmac
from datetime import datetime, timezone

from signflow.application.ports.signing_oracle import SigningResult


class HmacSigningOracleStub:
    """Deterministic signing oracle.

    Attributes:
        calls: (content_hash, key_id, algorithm) of every request.
        fail_with: When set, sign() raises it (failure injection).
    """

    def __init__(self, secret: bytes = b"signflow-dev-secret") -> None:
        self._secret = secret
        self.calls: list[tuple[str, str, str]] = []
        self.fail_with: Exception | None = None

    async def sign(self, content_hash: str, key_id: str, algorithm: str) -> SigningResult:
        # Yield to the loop the way a network call would
        await asyncio.sleep(0)
        self.calls.append((content_hash, key_id, algorithm))
        if self.fail_with is not None:
            raise self.fail_with
        signature = hmac.new(
            self._secret + key_id.encode("utf-8"),
            content_hash.encode("utf-8"),
            hashlib.sha256,
        ).digest()
        return SigningResult(
            signature=signature,
            key_id=key_id,
            algorithm=algorithm,
            signed_at=datetime.now(timezone.utc),
        )
