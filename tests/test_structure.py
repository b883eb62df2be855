"""
Structure lint tests.
Verify the package skeleton exists and follows the layer conventions.
"""

import ast
from pathlib import Path

PROJECT_ROOT = Path(__file__).parent.parent
PACKAGE = PROJECT_ROOT / "analytics_engine"


class TestProjectStructure:
    """Verify project structure follows conventions."""

    def test_core_directories_exist(self) -> None:
        """Core functional directories must exist."""
        assert (PACKAGE / "core").is_dir()
        assert (PACKAGE / "core" / "ports").is_dir()
        assert (PACKAGE / "core" / "services").is_dir()

    def test_component_directory_exists(self) -> None:
        """The analytics component has models, ports and entry points."""
        component = PACKAGE / "components" / "analytics"
        for name in ("models.py", "ports.py", "component.py", "__init__.py"):
            assert (component / name).is_file(), f"Missing {name} in analytics component"

    def test_tests_structure_exists(self) -> None:
        """Test directories must follow conventions."""
        assert (PROJECT_ROOT / "tests" / "unit").is_dir()
        assert (PROJECT_ROOT / "tests" / "integration").is_dir()
        assert (PROJECT_ROOT / "tests" / "regression").is_dir()

    def test_init_files_present(self) -> None:
        """Python packages must have __init__.py files."""
        packages = [
            "analytics_engine",
            "analytics_engine/core",
            "analytics_engine/core/ports",
            "analytics_engine/core/services",
            "analytics_engine/components",
            "analytics_engine/components/analytics",
            "analytics_engine/rules",
            "analytics_engine/adapters",
        ]
        for pkg in packages:
            init_file = PROJECT_ROOT / pkg / "__init__.py"
            assert init_file.is_file(), f"Missing __init__.py in {pkg}"

    def test_rules_file_exists(self) -> None:
        """The default rules file ships at the project root."""
        assert (PROJECT_ROOT / "rules.yaml").is_file()


class TestLayering:
    """Core code must not depend on outer layers."""

    def _imports(self, path: Path) -> list[str]:
        tree = ast.parse(path.read_text())
        modules = []
        for node in ast.walk(tree):
            if isinstance(node, ast.ImportFrom) and node.module:
                modules.append(node.module)
            elif isinstance(node, ast.Import):
                modules.extend(alias.name for alias in node.names)
        return modules

    def test_core_does_not_import_outer_layers(self) -> None:
        """core/ never imports components, adapters or rules."""
        outer = (
            "analytics_engine.components",
            "analytics_engine.adapters",
            "analytics_engine.rules",
        )
        for path in (PACKAGE / "core").rglob("*.py"):
            for module in self._imports(path):
                assert not module.startswith(outer), f"{path.name} imports {module}"

    def test_core_services_do_not_log(self) -> None:
        """Pure services stay free of logging."""
        for path in (PACKAGE / "core" / "services").glob("analytics_*.py"):
            assert "logging" not in self._imports(path), f"{path.name} imports logging"
