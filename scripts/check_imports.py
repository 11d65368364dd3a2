#!/usr/bin/env python3
"""Enforce the layering of the signflow package.

Layers, innermost first, and what each may import besides itself:

    domain, config   nothing from signflow
    application      domain, config
    infrastructure   domain, config, application
    bootstrap        every layer except workers
    workers          every layer

Run from the repository root (or pass the package directory)::

    python scripts/check_imports.py [package_dir]

Exits 1 when any outward import is found.
"""
import ast
import sys
from collections.abc import Iterator
from pathlib import Path
from typing import NamedTuple

PACKAGE_NAME = "signflow"

LAYER_HIERARCHY: dict[str, int] = {
    "domain": 0,
    "config": 0,
    "application": 1,
    "infrastructure": 2,
    "bootstrap": 3,
    "workers": 4,
}

ALLOWED_IMPORTS: dict[str, set[str]] = {
    "domain": set(),
    "config": set(),
    "application": {"domain", "config"},
    "infrastructure": {"domain", "config", "application"},
    "bootstrap": {"domain", "config", "application", "infrastructure"},
    "workers": {"domain", "config", "application", "infrastructure", "bootstrap"},
}


class Violation(NamedTuple):
    path: str
    line: int
    message: str


def get_import_module(node: ast.Import | ast.ImportFrom) -> str | None:
    """Return the first module named by an import statement.

    Relative imports (``from . import x``) have no module and yield None.
    """
    return next(_imported_modules(node), None)


def _imported_modules(node: ast.Import | ast.ImportFrom) -> Iterator[str]:
    if isinstance(node, ast.ImportFrom):
        if node.module:
            yield node.module
        return
    for alias in node.names:
        yield alias.name


def _layer_of(py_file: Path, package_dir: Path) -> str | None:
    try:
        top = py_file.relative_to(package_dir).parts[0]
    except (ValueError, IndexError):
        return None
    return top if top in LAYER_HIERARCHY else None


def _target_layer(module: str) -> str | None:
    package, _, rest = module.partition(".")
    if package != PACKAGE_NAME or not rest:
        return None
    layer = rest.split(".", 1)[0]
    return layer if layer in LAYER_HIERARCHY else None


def check_file_imports(py_file: Path, package_dir: Path) -> list[Violation]:
    """List the outward imports of one file inside ``package_dir``."""
    layer = _layer_of(py_file, package_dir)
    if layer is None:
        return []
    try:
        tree = ast.parse(py_file.read_text(encoding="utf-8"), filename=str(py_file))
    except (SyntaxError, UnicodeDecodeError) as e:
        print(f"Warning: skipping {py_file}: {e}", file=sys.stderr)
        return []

    allowed = ALLOWED_IMPORTS[layer]
    violations: list[Violation] = []
    for node in ast.walk(tree):
        if not isinstance(node, (ast.Import, ast.ImportFrom)):
            continue
        for module in _imported_modules(node):
            target = _target_layer(module)
            if target is None or target == layer or target in allowed:
                continue
            violations.append(
                Violation(str(py_file), node.lineno, f"{layer} layer cannot import from {target}")
            )
    return violations


def check_import_boundaries(package_dir: Path) -> list[Violation]:
    """Check every module under ``package_dir``; a missing directory has none."""
    if not package_dir.exists():
        print(f"Error: {package_dir} does not exist", file=sys.stderr)
        return []
    violations: list[Violation] = []
    for py_file in sorted(package_dir.rglob("*.py")):
        violations.extend(check_file_imports(py_file, package_dir))
    return violations


def format_violations(violations: list[Violation]) -> str:
    if not violations:
        return ""
    body = [f"  {path}:{line}: {message}" for path, line, message in sorted(violations)]
    return "\n".join(
        ["Import boundary violations found:", "", *body, "", f"Total: {len(violations)} violation(s)"]
    )


def main() -> int:
    if len(sys.argv) > 1:
        package_dir = Path(sys.argv[1])
    else:
        package_dir = Path(__file__).resolve().parent.parent / PACKAGE_NAME

    violations = check_import_boundaries(package_dir)
    if violations:
        print(format_violations(violations))
        return 1
    print("No import boundary violations found.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
