"""Unit tests for structured logging configuration.

Tests the structlog configuration and logging output format.
"""

import json
from collections.abc import Iterator

import pytest
import structlog

from signflow.application.observability.correlation import (
    correlation_id_processor,
    set_correlation_id,
)
from signflow.bootstrap.logging import configure_structlog as bootstrap_configure_structlog
from signflow.infrastructure.observability.logging import (
    REDACTED,
    configure_structlog,
    redact_secrets_processor,
)


@pytest.fixture(autouse=True)
def reset_structlog() -> Iterator[None]:
    yield
    structlog.reset_defaults()


def _processors() -> list[object]:
    return list(structlog.get_config()["processors"])


class TestConfigureStructlog:
    """Tests for configure_structlog function."""

    @pytest.mark.asyncio
    async def test_configure_production_mode(self) -> None:
        """Production mode renders JSON."""
        configure_structlog(environment="production")
        assert isinstance(_processors()[-1], structlog.processors.JSONRenderer)

    @pytest.mark.asyncio
    async def test_configure_development_mode(self) -> None:
        """Any other environment renders to the console."""
        configure_structlog(environment="development")
        assert isinstance(_processors()[-1], structlog.dev.ConsoleRenderer)

    @pytest.mark.asyncio
    async def test_default_is_production(self) -> None:
        """No argument means JSON output."""
        configure_structlog()
        assert isinstance(_processors()[-1], structlog.processors.JSONRenderer)

    @pytest.mark.asyncio
    async def test_correlation_processor_installed(self) -> None:
        """Every configuration carries the correlation id processor."""
        configure_structlog(environment="development")
        assert correlation_id_processor in _processors()

    @pytest.mark.asyncio
    async def test_bootstrap_wrapper_delegates(self) -> None:
        """The bootstrap entry point applies the same configuration."""
        bootstrap_configure_structlog("production")
        assert isinstance(_processors()[-1], structlog.processors.JSONRenderer)


class TestLogOutput:
    """Tests for the rendered log lines."""

    @pytest.mark.asyncio
    async def test_json_line_fields(self, capsys: pytest.CaptureFixture[str]) -> None:
        """A JSON line carries level, timestamp, correlation id and context."""
        configure_structlog(environment="production")
        set_correlation_id("req-42")

        structlog.get_logger().bind(service="SigningCoordinatorService").info(
            "sign_completed", envelope_id="env-1"
        )

        line = capsys.readouterr().out.strip().splitlines()[-1]
        entry = json.loads(line)
        assert entry["event"] == "sign_completed"
        assert entry["level"] == "info"
        assert entry["correlation_id"] == "req-42"
        assert entry["service"] == "SigningCoordinatorService"
        assert entry["envelope_id"] == "env-1"
        assert "timestamp" in entry

    @pytest.mark.asyncio
    async def test_log_level_from_environment(
        self, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """LOG_LEVEL filters out lower levels."""
        monkeypatch.setenv("LOG_LEVEL", "WARNING")
        configure_structlog(environment="production")

        logger = structlog.get_logger()
        logger.info("quiet")
        logger.warning("loud")

        lines = capsys.readouterr().out.strip().splitlines()
        assert [json.loads(line)["event"] for line in lines] == ["loud"]

    @pytest.mark.asyncio
    async def test_unknown_log_level_falls_back_to_info(
        self, capsys: pytest.CaptureFixture[str], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """An unrecognised LOG_LEVEL behaves like INFO."""
        monkeypatch.setenv("LOG_LEVEL", "chatty")
        configure_structlog(environment="production")

        logger = structlog.get_logger()
        logger.debug("hidden")
        logger.info("shown")

        lines = capsys.readouterr().out.strip().splitlines()
        assert [json.loads(line)["event"] for line in lines] == ["shown"]

    @pytest.mark.asyncio
    async def test_secret_fields_are_masked(self, capsys: pytest.CaptureFixture[str]) -> None:
        """A token passed as a log field never reaches the output."""
        configure_structlog(environment="production")

        structlog.get_logger().info(
            "token_presented", invitation_token="raw-secret-value", token_id="tok-1"
        )

        output = capsys.readouterr().out
        entry = json.loads(output.strip().splitlines()[-1])
        assert "raw-secret-value" not in output
        assert entry["invitation_token"] == REDACTED
        assert entry["token_id"] == "tok-1"


class TestRedactSecretsProcessor:
    """Tests for redact_secrets_processor."""

    @pytest.mark.parametrize("key", ["invitation_token", "token", "secret", "password"])
    def test_masks_credential_keys(self, key: str) -> None:
        """Credential-bearing keys are replaced."""
        event = redact_secrets_processor(None, "info", {"event": "x", key: "value"})
        assert event[key] == REDACTED

    def test_leaves_empty_values_and_other_keys(self) -> None:
        """Empty credentials stay empty so their absence remains visible."""
        event = redact_secrets_processor(
            None, "info", {"event": "x", "token": None, "envelope_id": "env-1"}
        )
        assert event == {"event": "x", "token": None, "envelope_id": "env-1"}
