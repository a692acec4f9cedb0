"""Configuration loading from pyproject.toml."""

import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from formtree._errors import FormtreeError
from formtree._solver import SolverSettings


class ConfigError(FormtreeError):
    """Error in formtree configuration."""


@dataclass(slots=True, frozen=True)
class FormtreeConfig:
    """Configuration loaded from pyproject.toml.

    Relative paths are resolved from the project root (directory containing pyproject.toml).
    """

    document: Path | None = None
    solver: SolverSettings = field(default_factory=SolverSettings)
    project_root: Path | None = None


def find_pyproject_toml(start_dir: Path | None = None) -> Path | None:
    """Find pyproject.toml by walking up from start_dir.

    Args:
        start_dir: Starting directory. Defaults to current working directory.

    Returns:
        Path to pyproject.toml if found, None otherwise.

    """
    if start_dir is None:
        start_dir = Path.cwd()

    current = start_dir.resolve()

    while True:
        candidate = current / "pyproject.toml"
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            # Reached filesystem root
            return None
        current = parent


def _parse_solver_settings(value: object) -> SolverSettings:
    """Parse the [tool.formtree.solver] table.

    Raises:
        ConfigError: If a key is unknown or has the wrong type.

    """
    if not isinstance(value, dict):
        msg = "Invalid [tool.formtree].solver: expected a table"
        raise ConfigError(msg)

    defaults = SolverSettings()
    kwargs: dict[str, Any] = {}
    for key, raw in value.items():
        match key:
            case "max_iterations":
                if not isinstance(raw, int) or isinstance(raw, bool) or raw < 1:
                    msg = "Invalid [tool.formtree.solver].max_iterations: expected a positive integer"
                    raise ConfigError(msg)
                kwargs[key] = raw
            case "tolerance":
                if not isinstance(raw, (int, float)) or isinstance(raw, bool) or raw <= 0:
                    msg = "Invalid [tool.formtree.solver].tolerance: expected a positive number"
                    raise ConfigError(msg)
                kwargs[key] = float(raw)
            case "perturbation":
                if raw not in ("deterministic", "random"):
                    msg = "Invalid [tool.formtree.solver].perturbation: expected 'deterministic' or 'random'"
                    raise ConfigError(msg)
                kwargs[key] = raw
            case "seed":
                if not isinstance(raw, int) or isinstance(raw, bool):
                    msg = "Invalid [tool.formtree.solver].seed: expected an integer"
                    raise ConfigError(msg)
                kwargs[key] = raw
            case _:
                msg = f"Unknown [tool.formtree.solver] key: '{key}'"
                raise ConfigError(msg)

    return SolverSettings(
        max_iterations=kwargs.get("max_iterations", defaults.max_iterations),
        tolerance=kwargs.get("tolerance", defaults.tolerance),
        perturbation=kwargs.get("perturbation", defaults.perturbation),
        seed=kwargs.get("seed", defaults.seed),
    )


def load_config(pyproject_path: Path) -> FormtreeConfig:
    """Load and validate [tool.formtree] config from pyproject.toml.

    Args:
        pyproject_path: Path to pyproject.toml

    Returns:
        Parsed FormtreeConfig

    Raises:
        ConfigError: If the configuration is invalid

    """
    project_root = pyproject_path.parent

    with pyproject_path.open("rb") as f:
        try:
            data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            msg = f"Invalid TOML in {pyproject_path}: {e}"
            raise ConfigError(msg) from e

    section = data.get("tool", {}).get("formtree", {})
    if not section:
        return FormtreeConfig(project_root=project_root)

    document: Path | None = None
    if "document" in section:
        document_value = section["document"]
        if not isinstance(document_value, str):
            msg = "Invalid [tool.formtree].document: expected string path"
            raise ConfigError(msg)
        document = Path(document_value)
        if not document.is_absolute():
            document = project_root / document

    solver = _parse_solver_settings(section["solver"]) if "solver" in section else SolverSettings()

    return FormtreeConfig(document=document, solver=solver, project_root=project_root)


def get_config() -> FormtreeConfig:
    """Get config from pyproject.toml in current directory or parents.

    Returns:
        FormtreeConfig (may be empty if no pyproject.toml or no [tool.formtree] section)

    """
    pyproject_path = find_pyproject_toml()
    if pyproject_path is None:
        return FormtreeConfig()
    return load_config(pyproject_path)
