"""
Import-boundary and purity enforcement.

1. Engine purity      -- site_engines/** may not import configuration,
                         file or network I/O modules.
2. Engine no-impure   -- site_engines/** may not call wall-clock or
                         environment functions.
3. Kernel boundary    -- site_kernel/** may not import site_engines or
                         site_config.
4. No module-level mutable caches in engines.

All scanning is done via AST; these tests are read-only.
"""

import ast
import glob
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _python_files(package: str) -> list[str]:
    """Return all .py files under *package*, sorted for deterministic order."""
    return sorted(glob.glob(str(ROOT / package / "**" / "*.py"), recursive=True))


def _parse(filepath: str) -> ast.Module:
    return ast.parse(Path(filepath).read_text(encoding="utf-8"), filename=filepath)


def _extract_imports(filepath: str) -> list[tuple[int, str]]:
    """Return (line_number, module_string) for every import in *filepath*."""
    results: list[tuple[int, str]] = []
    for node in ast.walk(_parse(filepath)):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _matches_any(module: str, prefixes: tuple[str, ...]) -> bool:
    """True if *module* equals or is a child of any prefix."""
    return any(module == p or module.startswith(f"{p}.") for p in prefixes)


def _extract_attribute_calls(filepath: str) -> list[tuple[int, str]]:
    """Return (line_number, 'receiver.attr') for two-level attribute references."""
    return [
        (node.lineno, f"{node.value.id}.{node.attr}")
        for node in ast.walk(_parse(filepath))
        if isinstance(node, ast.Attribute) and isinstance(node.value, ast.Name)
    ]


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------

class TestEnginePurity:
    """site_engines/** may not import config or I/O layers."""

    FORBIDDEN_PREFIXES = (
        "site_config",
        "yaml",
        "os",
        "io",
        "pathlib",
        "shutil",
        "socket",
        "subprocess",
        "urllib",
        "sqlite3",
    )

    def test_engine_files_exist(self):
        assert _python_files("site_engines")

    def test_engine_files_have_no_forbidden_imports(self):
        violations = [
            f"  {filepath}:{lineno} imports '{module}'"
            for filepath in _python_files("site_engines")
            for lineno, module in _extract_imports(filepath)
            if _matches_any(module, self.FORBIDDEN_PREFIXES)
        ]
        assert not violations, (
            "Engine purity violation: site_engines/** must not import "
            "configuration or I/O modules:\n" + "\n".join(violations)
        )


class TestEngineNoImpureFunctions:
    """site_engines/** may not call wall-clock or environment functions.

    Allowed (observational-only):
        time.monotonic
    """

    FORBIDDEN_CALLS = frozenset({
        "datetime.now",
        "datetime.utcnow",
        "datetime.today",
        "date.today",
        "time.time",
        "os.environ",
        "os.getenv",
        "random.random",
    })

    def test_no_impure_calls_in_engines(self):
        violations = [
            f"  {filepath}:{lineno} uses {qualname}"
            for filepath in _python_files("site_engines")
            for lineno, qualname in _extract_attribute_calls(filepath)
            if qualname in self.FORBIDDEN_CALLS
        ]
        assert not violations, (
            "Engines must receive time explicitly:\n" + "\n".join(violations)
        )

    def test_open_builtin_not_called(self):
        violations = [
            f"  {filepath}:{node.lineno}"
            for filepath in _python_files("site_engines")
            for node in ast.walk(_parse(filepath))
            if isinstance(node, ast.Call)
            and isinstance(node.func, ast.Name)
            and node.func.id == "open"
        ]
        assert not violations, "Engines must not open files:\n" + "\n".join(violations)


class TestKernelBoundary:
    """site_kernel/** sits below engines and configuration."""

    def test_kernel_does_not_import_upwards(self):
        violations = [
            f"  {filepath}:{lineno} imports '{module}'"
            for filepath in _python_files("site_kernel")
            for lineno, module in _extract_imports(filepath)
            if _matches_any(module, ("site_engines", "site_config"))
        ]
        assert not violations, "\n".join(violations)


class TestNoModuleCaches:
    """Engines hold no module-level mutable state."""

    def test_no_module_level_mutable_literals(self):
        violations = []
        for filepath in _python_files("site_engines"):
            for node in _parse(filepath).body:
                if isinstance(node, (ast.Assign, ast.AnnAssign)):
                    targets = node.targets if isinstance(node, ast.Assign) else [node.target]
                    if any(isinstance(t, ast.Name) and t.id == "__all__" for t in targets):
                        continue
                    value = node.value
                    if isinstance(value, (ast.List, ast.Dict, ast.Set)):
                        violations.append(f"  {filepath}:{node.lineno}")
        assert not violations, (
            "Module-level mutable containers in engines:\n" + "\n".join(violations)
        )
