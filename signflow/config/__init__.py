"""Configuration for signflow."""

from signflow.config.signing_config import (
    DEFAULT_SIGNING_CONFIG,
    TEST_SIGNING_CONFIG,
    SigningConfig,
)

__all__: list[str] = ["DEFAULT_SIGNING_CONFIG", "TEST_SIGNING_CONFIG", "SigningConfig"]
