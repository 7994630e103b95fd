"""Utilities to discover termcalc documents in scripts and modules.

The module-path computation was adapted from `fastapi_cli.discover` of package `fastapi-cli` version 0.0.8 (77e6d1f).
"""

from __future__ import annotations

import importlib
import logging
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from termcalc._document import Document

from .config import ModuleSource, ScriptSource

if TYPE_CHECKING:
    from types import ModuleType

    from .config import DocumentSource

logger = logging.getLogger(__name__)


@dataclass
class ModuleData:
    """Import information for a Python file."""

    module_import_str: str
    extra_sys_path: Path
    module_paths: list[Path]


def get_module_data_from_path(path: Path) -> ModuleData:
    """Get the dotted module name of a file, walking up through packages.

    Args:
        path: Path to a Python file or package

    Returns:
        ModuleData containing module import information

    """
    use_path = path.resolve()
    module_path = use_path.parent if use_path.is_file() and use_path.stem == "__init__" else use_path
    module_paths = [module_path]
    extra_sys_path = module_path.parent
    for parent in module_path.parents:
        if not (parent / "__init__.py").is_file():
            break
        module_paths.insert(0, parent)
        extra_sys_path = parent.parent

    return ModuleData(
        module_import_str=".".join(p.stem for p in module_paths),
        extra_sys_path=extra_sys_path.resolve(),
        module_paths=module_paths,
    )


def _pick_document(module: ModuleType, name: str | None) -> Document:
    if name:
        if not hasattr(module, name):
            msg = f"Could not find document '{name}' in {module.__name__}"
            raise ValueError(msg)
        document = getattr(module, name)
        if not isinstance(document, Document):
            msg = f"'{name}' in {module.__name__} is not a Document instance"
            raise TypeError(msg)
        return document

    for attribute in dir(module):
        candidate = getattr(module, attribute)
        if isinstance(candidate, Document):
            logger.debug(f"Found document: {attribute}")
            return candidate

    msg = "Could not find Document in module, try using --document"
    raise ValueError(msg)


def load_document_from_script(script_path: Path, document_name: str | None = None) -> Document:
    """Load a document from a Python script path.

    Args:
        script_path: Path to the Python script defining the document
        document_name: Name of the document variable. If None, the first Document found is used

    Raises:
        ImportError: If the module cannot be imported
        ValueError: If no document is found or the named variable does not exist
        TypeError: If the named variable is not a Document instance

    """
    module_data = get_module_data_from_path(script_path)
    sys.path.insert(0, str(module_data.extra_sys_path))

    try:
        module = importlib.import_module(module_data.module_import_str)
    except (ImportError, ValueError):
        logger.exception("Import error")
        logger.warning("Ensure all the package directories have an __init__.py file")
        raise

    return _pick_document(module, document_name)


def load_document_from_module_path(module_path: str) -> Document:
    """Load a document from a module path (e.g., 'examples.demo:document').

    Raises:
        ValueError: If module path format is invalid
        TypeError: If the specified variable is not a Document instance

    """
    if ":" not in module_path:
        msg = "Module path must be in format 'module.path:variable_name'"
        raise ValueError(msg)

    module_name, document_name = module_path.split(":", 1)
    return _pick_document(importlib.import_module(module_name), document_name)


def load_document(source: DocumentSource) -> Document:
    match source:
        case ScriptSource(script=script, name=name):
            return load_document_from_script(script, name)
        case ModuleSource(module_path=module_path):
            return load_document_from_module_path(module_path)


def source_from_argument(path: str, document_name: str | None = None) -> DocumentSource:
    """Interpret a CLI path argument as a module path or a script path."""
    if ":" in path and not Path(path).exists():
        return ModuleSource(module_path=path)
    return ScriptSource(script=Path(path), name=document_name)
