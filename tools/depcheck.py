from __future__ import annotations

import argparse
import ast
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Sequence

PACKAGE_ROOT = Path(__file__).resolve().parents[1] / "src" / "tablehold"

# Imports each inner layer must never reach for; outer layers depend inward only.
LAYER_RULES: dict[str, frozenset[str]] = {
    "domain": frozenset(
        {
            "fastapi",
            "starlette",
            "pydantic",
            "sqlalchemy",
            "psycopg",
            "redis",
            "stripe",
            "jwt",
            "httpx",
            "opentelemetry",
            "prometheus_client",
            "tablehold.application",
            "tablehold.api",
            "tablehold.infrastructure",
        }
    ),
    "application": frozenset(
        {
            "fastapi",
            "starlette",
            "sqlalchemy",
            "psycopg",
            "alembic",
            "redis",
            "stripe",
            "tablehold.api",
            "tablehold.infrastructure",
        }
    ),
}


@dataclass(frozen=True)
class Violation:
    layer: str
    file_path: Path
    line: int
    module: str


def _python_files(root: Path) -> Iterable[Path]:
    if root.is_file() and root.suffix == ".py":
        yield root
        return
    if root.is_dir():
        yield from sorted(root.rglob("*.py"))


def _is_forbidden(module: str, forbidden: frozenset[str]) -> bool:
    return any(module == name or module.startswith(f"{name}.") for name in forbidden)


def _imported_modules(tree: ast.AST) -> Iterable[tuple[int, str]]:
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                yield node.lineno, alias.name
        elif isinstance(node, ast.ImportFrom) and node.module and node.level == 0:
            yield node.lineno, node.module


def scan_layer(layer: str, paths: Sequence[Path]) -> list[Violation]:
    forbidden = LAYER_RULES[layer]
    violations: list[Violation] = []
    for path in paths:
        for file_path in _python_files(path):
            tree = ast.parse(file_path.read_text(encoding="utf-8"), filename=str(file_path))
            for line, module in _imported_modules(tree):
                if _is_forbidden(module, forbidden):
                    violations.append(Violation(layer, file_path, line, module))
    return violations


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Layering check for tablehold imports.")
    parser.add_argument(
        "--layer",
        choices=sorted(LAYER_RULES),
        action="append",
        default=[],
        help="Layer to check (repeatable). Defaults to every layer.",
    )
    parser.add_argument(
        "--path",
        action="append",
        default=[],
        help="Override the scanned path for the selected layer(s).",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    layers = args.layer or sorted(LAYER_RULES)

    violations: list[Violation] = []
    for layer in layers:
        paths = [Path(item) for item in args.path] if args.path else [PACKAGE_ROOT / layer]
        violations.extend(scan_layer(layer, paths))

    if not violations:
        print("depcheck passed")
        return 0

    print("depcheck failed: forbidden imports detected")
    for violation in violations:
        print(f"[{violation.layer}] {violation.file_path}:{violation.line} -> {violation.module}")
    return 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
