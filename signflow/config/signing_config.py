"""Signing workflow configuration.

Defines the values the coordinator needs (signing key, token lifetimes,
reminder policy, paging and outbox limits) with environment variable
overrides. The configuration is built once at startup and injected into
the coordinator; domain code never reads the process environment.

Environment Variables:
- SIGNFLOW_SIGNING_KEY_ID: Signing key identifier (default: signflow-default-key)
- SIGNFLOW_SIGNING_ALGORITHM: Signing algorithm (default: RSASSA_PSS_SHA_256)
- SIGNFLOW_INVITATION_TTL_DAYS: Signer invitation lifetime in days (default: 7)
- SIGNFLOW_VIEWER_TTL_DAYS: Viewer invitation lifetime in days (default: 7)
- SIGNFLOW_MAX_REMINDERS: Reminders per signer (default: 3)
- SIGNFLOW_MIN_HOURS_BETWEEN_REMINDERS: Reminder spacing in hours (default: 24)
- SIGNFLOW_DEFAULT_PAGE_SIZE: Default page size (default: 25)
- SIGNFLOW_MAX_PAGE_SIZE: Page size cap (default: 100)
- SIGNFLOW_OUTBOX_BATCH_SIZE: Records per dispatch batch (default: 50)
- SIGNFLOW_OUTBOX_MAX_ATTEMPTS: Attempts before a record is FAILED (default: 5)
- SIGNFLOW_MAX_ENVELOPE_TTL_DAYS: Furthest allowed envelope deadline in days (default: 365)
- SIGNFLOW_DOWNLOAD_TTL_SECONDS: Default document download link lifetime (default: 1800)
- SIGNFLOW_REQUIRE_FLATTENED_DOCUMENT: Refuse to sign the raw source document (default: false)
"""

from __future__ import annotations

import os
from dataclasses import dataclass

SUPPORTED_SIGNING_ALGORITHMS: frozenset[str] = frozenset(
    {
        "RSASSA_PSS_SHA_256",
        "RSASSA_PSS_SHA_384",
        "RSASSA_PSS_SHA_512",
        "RSASSA_PKCS1_V1_5_SHA_256",
        "RSASSA_PKCS1_V1_5_SHA_384",
        "RSASSA_PKCS1_V1_5_SHA_512",
        "ECDSA_SHA_256",
        "ECDSA_SHA_384",
        "ECDSA_SHA_512",
    }
)

# Invitation tokens can never live longer than this
MAX_TOKEN_TTL_DAYS = 365
MAX_DOWNLOAD_TTL_SECONDS = 86400


def _get_int_env(key: str, default: int) -> int:
    """Get integer environment variable with default.

    Args:
        key: Environment variable name.
        default: Default value if not set or invalid.

    Returns:
        Parsed integer value or default.
    """
    value = os.environ.get(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _get_bool_env(key: str, default: bool) -> bool:
    value = os.environ.get(key, "").strip().lower()
    if not value:
        return default
    return value in ("1", "true", "yes", "on")


def _get_str_env(key: str, default: str, choices: frozenset[str] | None = None) -> str:
    """Get string environment variable, falling back when empty or not allowed."""
    value = os.environ.get(key, "").strip()
    if not value:
        return default
    if choices is not None and value not in choices:
        return default
    return value


@dataclass(frozen=True)
class SigningConfig:
    """Configuration for the signing coordinator.

    Attributes:
        signing_key_id: Key identifier passed to the signing oracle.
        signing_algorithm: Algorithm identifier passed to the signing oracle.
        invitation_ttl_days: Lifetime of signer invitation tokens.
        viewer_ttl_days: Default lifetime of viewer tokens.
        max_token_ttl_days: Hard cap on any token lifetime.
        max_reminders_per_signer: Reminders allowed per signer.
        min_hours_between_reminders: Minimum spacing between reminders.
        default_page_size: Page size when a query gives none.
        max_page_size: Largest page size a query may request.
        outbox_batch_size: Records dispatched per worker batch.
        outbox_max_attempts: Failed attempts before a record is FAILED.
        max_envelope_ttl_days: Furthest an envelope expires_at may lie ahead.
        download_ttl_seconds: Default lifetime of a document download link.
        require_flattened_document: Sign only a flattened or signed document,
            never the uploaded source.
    """

    signing_key_id: str = "signflow-default-key"
    signing_algorithm: str = "RSASSA_PSS_SHA_256"
    invitation_ttl_days: int = 7
    viewer_ttl_days: int = 7
    max_token_ttl_days: int = MAX_TOKEN_TTL_DAYS
    max_reminders_per_signer: int = 3
    min_hours_between_reminders: int = 24
    default_page_size: int = 25
    max_page_size: int = 100
    outbox_batch_size: int = 50
    outbox_max_attempts: int = 5
    max_envelope_ttl_days: int = 365
    download_ttl_seconds: int = 1800
    require_flattened_document: bool = False

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if not self.signing_key_id:
            raise ValueError("signing_key_id must not be empty")
        if self.signing_algorithm not in SUPPORTED_SIGNING_ALGORITHMS:
            raise ValueError(f"unsupported signing_algorithm: {self.signing_algorithm}")
        if not 1 <= self.max_token_ttl_days <= MAX_TOKEN_TTL_DAYS:
            raise ValueError(
                f"max_token_ttl_days must be between 1 and {MAX_TOKEN_TTL_DAYS}, "
                f"got {self.max_token_ttl_days}"
            )
        for name in ("invitation_ttl_days", "viewer_ttl_days"):
            value = getattr(self, name)
            if not 1 <= value <= self.max_token_ttl_days:
                raise ValueError(
                    f"{name} must be between 1 and {self.max_token_ttl_days}, got {value}"
                )
        if self.max_reminders_per_signer < 0:
            raise ValueError(
                f"max_reminders_per_signer must be non-negative, got {self.max_reminders_per_signer}"
            )
        if self.min_hours_between_reminders < 0:
            raise ValueError(
                f"min_hours_between_reminders must be non-negative, got {self.min_hours_between_reminders}"
            )
        if self.max_page_size < 1:
            raise ValueError(f"max_page_size must be positive, got {self.max_page_size}")
        if not 1 <= self.default_page_size <= self.max_page_size:
            raise ValueError(
                f"default_page_size ({self.default_page_size}) must be between 1 and "
                f"max_page_size ({self.max_page_size})"
            )
        if self.outbox_batch_size < 1:
            raise ValueError(f"outbox_batch_size must be positive, got {self.outbox_batch_size}")
        if self.outbox_max_attempts < 1:
            raise ValueError(
                f"outbox_max_attempts must be positive, got {self.outbox_max_attempts}"
            )
        if self.max_envelope_ttl_days < 1:
            raise ValueError(
                f"max_envelope_ttl_days must be positive, got {self.max_envelope_ttl_days}"
            )
        if not 1 <= self.download_ttl_seconds <= MAX_DOWNLOAD_TTL_SECONDS:
            raise ValueError(
                f"download_ttl_seconds must be between 1 and {MAX_DOWNLOAD_TTL_SECONDS}, "
                f"got {self.download_ttl_seconds}"
            )

    def clamp_page_size(self, limit: int | None) -> int:
        """Clamp a requested page size to [1, max_page_size]."""
        if limit is None:
            return self.default_page_size
        return max(1, min(limit, self.max_page_size))

    @classmethod
    def from_environment(cls) -> SigningConfig:
        """Create config from environment variables with defaults.

        Returns:
            SigningConfig with values from environment or defaults.
        """
        return cls(
            signing_key_id=_get_str_env("SIGNFLOW_SIGNING_KEY_ID", "signflow-default-key"),
            signing_algorithm=_get_str_env(
                "SIGNFLOW_SIGNING_ALGORITHM",
                "RSASSA_PSS_SHA_256",
                SUPPORTED_SIGNING_ALGORITHMS,
            ),
            invitation_ttl_days=_get_int_env("SIGNFLOW_INVITATION_TTL_DAYS", 7),
            viewer_ttl_days=_get_int_env("SIGNFLOW_VIEWER_TTL_DAYS", 7),
            max_reminders_per_signer=_get_int_env("SIGNFLOW_MAX_REMINDERS", 3),
            min_hours_between_reminders=_get_int_env(
                "SIGNFLOW_MIN_HOURS_BETWEEN_REMINDERS", 24
            ),
            default_page_size=_get_int_env("SIGNFLOW_DEFAULT_PAGE_SIZE", 25),
            max_page_size=_get_int_env("SIGNFLOW_MAX_PAGE_SIZE", 100),
            outbox_batch_size=_get_int_env("SIGNFLOW_OUTBOX_BATCH_SIZE", 50),
            outbox_max_attempts=_get_int_env("SIGNFLOW_OUTBOX_MAX_ATTEMPTS", 5),
            max_envelope_ttl_days=_get_int_env("SIGNFLOW_MAX_ENVELOPE_TTL_DAYS", 365),
            download_ttl_seconds=_get_int_env("SIGNFLOW_DOWNLOAD_TTL_SECONDS", 1800),
            require_flattened_document=_get_bool_env(
                "SIGNFLOW_REQUIRE_FLATTENED_DOCUMENT", False
            ),
        )


# Default production config
DEFAULT_SIGNING_CONFIG = SigningConfig()

# Testing config with small limits for unit tests
TEST_SIGNING_CONFIG = SigningConfig(
    signing_key_id="test-signing-key",
    invitation_ttl_days=1,
    viewer_ttl_days=1,
    max_reminders_per_signer=2,
    min_hours_between_reminders=1,
    default_page_size=5,
    max_page_size=10,
    outbox_batch_size=10,
    outbox_max_attempts=3,
    max_envelope_ttl_days=30,
    download_ttl_seconds=600,
)
