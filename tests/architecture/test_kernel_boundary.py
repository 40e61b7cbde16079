"""
Kernel boundary and invariant catalogue.

Tests that enforce the kernel's architectural boundaries:

1. fatura_kernel/** may NOT import fatura_config or scripts.  The kernel
   never depends upward; configuration reaches it as a LedgerPolicy.

2. fatura_kernel/domain/** may not import the database layer, the store
   or the services.

3. Only fatura_kernel/store/storage.py commits or rolls back sessions.

4. The ledger invariant catalogue is complete and non-empty.

These tests read source code via AST -- they cannot break anything.
"""

import ast
import glob
from pathlib import Path

from fatura_kernel.invariants import (
    ALL_LEDGER_INVARIANTS,
    FORBIDDEN_KERNEL_IMPORTS,
    LedgerInvariant,
)

ROOT = Path(__file__).resolve().parents[2]

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _python_files(root: str) -> list[str]:
    """Return all .py files under root, relative to the repository root."""
    return sorted(
        str(Path(p).relative_to(ROOT))
        for p in glob.glob(f"{ROOT / root}/**/*.py", recursive=True)
    )


def _parse(filepath: str) -> ast.AST | None:
    try:
        source = (ROOT / filepath).read_text()
        return ast.parse(source, filename=filepath)
    except (SyntaxError, UnicodeDecodeError):
        return None


def _extract_imports(filepath: str) -> list[tuple[int, str]]:
    """Extract (line_number, module_string) for all imports in a file."""
    tree = _parse(filepath)
    if tree is None:
        return []

    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                results.append((node.lineno, node.module))
    return results


def _matches(module: str, prefix: str) -> bool:
    return module == prefix or module.startswith(f"{prefix}.")


# ---------------------------------------------------------------------------
# Test: Kernel has no upward dependencies
# ---------------------------------------------------------------------------


class TestKernelNoUpwardDependencies:
    """fatura_kernel/** must not import fatura_config or scripts."""

    def test_kernel_files_found(self):
        assert _python_files("fatura_kernel")

    def test_kernel_does_not_import_forbidden_packages(self):
        violations: list[str] = []

        for filepath in _python_files("fatura_kernel"):
            for lineno, module in _extract_imports(filepath):
                for prefix in FORBIDDEN_KERNEL_IMPORTS:
                    if _matches(module, prefix):
                        violations.append(f"  {filepath}:{lineno} imports '{module}'")

        assert not violations, (
            "Kernel boundary violation -- fatura_kernel/** must not import "
            "upward packages:\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# Test: Domain purity
# ---------------------------------------------------------------------------


class TestKernelDomainPurity:
    """fatura_kernel/domain/** must not import the database or service layers."""

    FORBIDDEN_MODULES = (
        "sqlalchemy",
        "psycopg2",
        "sqlite3",
        "fatura_kernel.db",
        "fatura_kernel.store",
        "fatura_kernel.services",
        "fatura_kernel.selectors",
    )

    def test_domain_no_orm_imports(self):
        violations: list[str] = []

        for filepath in _python_files("fatura_kernel/domain"):
            for lineno, module in _extract_imports(filepath):
                for forbidden in self.FORBIDDEN_MODULES:
                    if _matches(module, forbidden):
                        violations.append(f"  {filepath}:{lineno} imports '{module}'")

        assert not violations, (
            "Domain purity violation -- fatura_kernel/domain/** must not "
            "import the database or service layers:\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# Test: Transaction boundary ownership
# ---------------------------------------------------------------------------


class TestTransactionBoundary:
    """Only Storage commits or rolls back a session."""

    ALLOWED = {"fatura_kernel/store/storage.py"}

    def test_no_commit_outside_storage(self):
        violations: list[str] = []

        for filepath in _python_files("fatura_kernel"):
            if filepath in self.ALLOWED:
                continue
            tree = _parse(filepath)
            if tree is None:
                continue
            for node in ast.walk(tree):
                if (
                    isinstance(node, ast.Call)
                    and isinstance(node.func, ast.Attribute)
                    and node.func.attr == "commit"
                    and isinstance(node.func.value, ast.Attribute)
                    and node.func.value.attr == "session"
                ):
                    violations.append(f"  {filepath}:{node.lineno} calls session.commit()")

        assert not violations, (
            "Transaction boundary violation -- only Storage.unit_of_work() "
            "may commit:\n" + "\n".join(violations)
        )


# ---------------------------------------------------------------------------
# Test: Invariant catalogue
# ---------------------------------------------------------------------------


class TestLedgerInvariantCatalogue:

    def test_catalogue_complete(self):
        assert ALL_LEDGER_INVARIANTS == frozenset(LedgerInvariant)
        assert len(ALL_LEDGER_INVARIANTS) == 6

    def test_values_are_stable_names(self):
        for invariant in LedgerInvariant:
            assert invariant.value == invariant.name.lower()
