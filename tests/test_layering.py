"""
tests/test_layering.py
Enforce architectural layering:
  utils → may NOT import core, main or any third-party UI/config library
  core  → may NOT import main, rich, yaml

Run: pytest tests/test_layering.py -v
"""

import sys, os, ast
from pathlib import Path

ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(ROOT))


def get_imports(filepath: Path) -> list:
    """Extract all imported module names from a Python file."""
    try:
        tree = ast.parse(filepath.read_text())
    except SyntaxError:
        return []
    imports = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                imports.append(alias.name)
        elif isinstance(node, ast.ImportFrom):
            if node.module:
                imports.append(node.module)
    return imports


def all_py_files(pkg_dir: Path):
    return list(pkg_dir.rglob("*.py"))


class TestLayering:
    def _check(self, package: str, forbidden: set):
        pkg_dir = ROOT / package
        assert pkg_dir.exists(), f"missing package {package}"
        for pyfile in all_py_files(pkg_dir):
            imports = get_imports(pyfile)
            for imp in imports:
                top = imp.split(".")[0]
                assert top not in forbidden, (
                    f"LAYERING VIOLATION in {pyfile.relative_to(ROOT)}: "
                    f"'{package}' imports '{top}' "
                    f"(forbidden: {forbidden})"
                )

    def test_core_does_not_import_cli(self):
        self._check("core", {"main"})

    def test_core_does_not_import_presentation(self):
        self._check("core", {"rich", "yaml"})

    def test_utils_is_a_leaf(self):
        self._check("utils", {"core", "main", "rich", "yaml"})


if __name__ == "__main__":
    import pytest
    pytest.main([__file__, "-v"])
