"""Configuration loading from the ``[tool.termcalc]`` table of pyproject.toml."""

import tomllib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, cast

from pydantic import ValidationError

from termcalc._document import DocumentSettings


class ConfigError(Exception):
    """Error in termcalc configuration."""


@dataclass(slots=True, frozen=True)
class ScriptSource:
    """Script path with optional variable name."""

    script: Path
    name: str | None = None


@dataclass(slots=True, frozen=True)
class ModuleSource:
    """Module path with variable name (e.g., 'examples.demo:document')."""

    module_path: str


DocumentSource = ScriptSource | ModuleSource


@dataclass(slots=True, frozen=True)
class TermcalcConfig:
    """Configuration loaded from pyproject.toml.

    Relative paths are resolved from the project root (directory containing pyproject.toml).

    Attributes:
        document: Where to load the document from.
        output: Default path of the exported results.
        settings: Overrides of the document settings, validated against ``DocumentSettings``.
        project_root: Directory of the pyproject.toml the config was read from.

    """

    document: DocumentSource | None = None
    output: Path | None = None
    settings: dict[str, Any] | None = None
    project_root: Path | None = None

    def apply_settings(self, settings: DocumentSettings, **overrides: Any) -> DocumentSettings:  # noqa: ANN401
        """Merge config settings and non-None ``overrides`` into ``settings``.

        Raises:
            ConfigError: If the merged settings are invalid.

        """
        merged = settings.model_dump()
        merged.update(self.settings or {})
        merged.update({key: value for key, value in overrides.items() if value is not None})
        try:
            return DocumentSettings.model_validate(merged)
        except ValidationError as e:
            msg = f"Invalid document settings: {e}"
            raise ConfigError(msg) from e


def find_pyproject_toml(start_dir: Path | None = None) -> Path | None:
    """Find pyproject.toml by walking up from start_dir.

    Args:
        start_dir: Starting directory. Defaults to current working directory.

    Returns:
        Path to pyproject.toml if found, None otherwise.

    """
    current = (start_dir if start_dir is not None else Path.cwd()).resolve()
    for directory in (current, *current.parents):
        candidate = directory / "pyproject.toml"
        if candidate.is_file():
            return candidate
    return None


def _resolve(path_value: object, key: str, project_root: Path) -> Path:
    if not isinstance(path_value, str):
        msg = f"Invalid [tool.termcalc].{key}: expected string path"
        raise ConfigError(msg)
    path = Path(path_value)
    return path if path.is_absolute() else project_root / path


def _parse_document_source(value: object, project_root: Path) -> DocumentSource:
    """Parse the document field from config.

    Raises:
        ConfigError: If the value format is invalid

    """
    if isinstance(value, str):
        # "module.path:variable"
        if ":" not in value:
            msg = f"Invalid module path '{value}'. Expected format: 'module.path:variable_name'"
            raise ConfigError(msg)
        return ModuleSource(module_path=value)

    if isinstance(value, dict):
        # { script = "path.py", name = "document" }
        value_dict = cast("dict[str, object]", value)
        if "script" not in value_dict:
            msg = "Invalid [tool.termcalc].document configuration. Expected string or table with 'script' key."
            raise ConfigError(msg)
        script = _resolve(value_dict["script"], "document.script", project_root)
        name = value_dict.get("name")
        if name is not None and not isinstance(name, str):
            msg = "Invalid [tool.termcalc].document.name: expected string"
            raise ConfigError(msg)
        return ScriptSource(script=script, name=name)

    msg = "Invalid [tool.termcalc].document configuration. Expected string or table with 'script' key."
    raise ConfigError(msg)


def _parse_settings(value: object) -> dict[str, Any]:
    if not isinstance(value, dict):
        msg = "Invalid [tool.termcalc].settings: expected a table"
        raise ConfigError(msg)
    try:
        DocumentSettings.model_validate(value)
    except ValidationError as e:
        msg = f"Invalid [tool.termcalc].settings: {e}"
        raise ConfigError(msg) from e
    return cast("dict[str, Any]", value)


def load_config(pyproject_path: Path) -> TermcalcConfig:
    """Load and validate [tool.termcalc] config from pyproject.toml.

    Args:
        pyproject_path: Path to pyproject.toml

    Returns:
        Parsed TermcalcConfig

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

    section = data.get("tool", {}).get("termcalc", {})
    if not section:
        return TermcalcConfig(project_root=project_root)

    document = _parse_document_source(section["document"], project_root) if "document" in section else None
    output = _resolve(section["output"], "output", project_root) if "output" in section else None
    settings = _parse_settings(section["settings"]) if "settings" in section else None

    return TermcalcConfig(document=document, output=output, settings=settings, project_root=project_root)


def get_config() -> TermcalcConfig:
    """Get config from pyproject.toml in current directory or parents.

    Returns:
        TermcalcConfig (empty if there is no pyproject.toml or no [tool.termcalc] section)

    """
    pyproject_path = find_pyproject_toml()
    if pyproject_path is None:
        return TermcalcConfig()
    return load_config(pyproject_path)
