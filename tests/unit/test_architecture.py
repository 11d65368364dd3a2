"""Tests to verify hexagonal architecture structure."""

from pathlib import Path

import pytest

# Compute project root relative to this test file
PROJECT_ROOT = Path(__file__).parent.parent.parent


@pytest.fixture
def package_path() -> Path:
    """Return the signflow package path."""
    return PROJECT_ROOT / "signflow"


def test_main_layers_exist(package_path: Path) -> None:
    """Verify all main layer directories exist."""
    layers = ["domain", "config", "application", "infrastructure", "bootstrap", "workers"]
    for layer in layers:
        assert (package_path / layer).is_dir(), f"Missing layer: {layer}"
        assert (package_path / layer / "__init__.py").is_file(), (
            f"Missing {layer}/__init__.py"
        )


def test_domain_subdirectories_exist(package_path: Path) -> None:
    """Verify domain layer has required subdirectories."""
    domain = package_path / "domain"
    for subdir in ["errors", "events", "models", "primitives", "services"]:
        assert (domain / subdir).is_dir(), f"Missing domain subdir: {subdir}"
        assert (domain / subdir / "__init__.py").is_file(), f"Missing {subdir}/__init__.py"


def test_domain_has_no_outer_layer_imports(package_path: Path) -> None:
    """Domain is the innermost layer and stays pure."""
    forbidden = [
        "signflow.application",
        "signflow.config",
        "signflow.infrastructure",
        "signflow.bootstrap",
        "signflow.workers",
    ]
    for py_file in (package_path / "domain").rglob("*.py"):
        content = py_file.read_text()
        for module in forbidden:
            assert module not in content, f"{py_file} references {module}"


def test_application_has_no_infrastructure_imports(package_path: Path) -> None:
    """Application depends on ports, never on adapters or stubs."""
    for py_file in (package_path / "application").rglob("*.py"):
        content = py_file.read_text()
        assert "from signflow.infrastructure" not in content, py_file
        assert "from signflow.bootstrap" not in content, py_file


def test_base_error_exported_from_domain() -> None:
    """SigningWorkflowError is the root of every domain error."""
    from signflow.domain import SigningWorkflowError
    from signflow.domain.exceptions import (
        AccessDeniedError,
        NotFoundError,
        StateConflictError,
        ValidationError,
    )

    for error_class in (AccessDeniedError, NotFoundError, StateConflictError, ValidationError):
        assert issubclass(error_class, SigningWorkflowError)


def test_base_error_accepts_message() -> None:
    """SigningWorkflowError keeps its message."""
    from signflow.domain.exceptions import SigningWorkflowError

    assert str(SigningWorkflowError("test message")) == "test message"
    assert str(SigningWorkflowError()) == ""
