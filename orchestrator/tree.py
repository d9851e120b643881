"""Recursive discovery of service modules in a directory tree."""

from __future__ import annotations

import importlib.util
import inspect
import logging
import re
import sys
from pathlib import Path
from types import ModuleType
from typing import Any, Iterator

from .models import ClassifiedService, RegisteredService, ServiceLoadError, classify

logger = logging.getLogger(__name__)

SERVICE_FILE_SUFFIX = "_service.py"
MODULE_NAMESPACE = "servicehost_discovered"


def is_service_file(path: Path) -> bool:
    return path.is_file() and path.name.endswith(SERVICE_FILE_SUFFIX) and not path.name.startswith(".")


def _is_walkable_dir(path: Path) -> bool:
    return path.is_dir() and not path.name.startswith((".", "_"))


def _module_name(path: Path, root: Path) -> str:
    relative = path.relative_to(root).with_suffix("")
    parts = [re.sub(r"\W", "_", part) for part in relative.parts]
    return ".".join([MODULE_NAMESPACE, *parts])


def load_module(path: Path, root: Path) -> ModuleType:
    """Import a service file under a unique name derived from its place under ``root``."""
    name = _module_name(path, root)
    spec = importlib.util.spec_from_file_location(name, path)
    if spec is None or spec.loader is None:
        raise ServiceLoadError(path, ImportError(f"Cannot load module from {path}"))
    module = importlib.util.module_from_spec(spec)
    sys.modules[name] = module
    try:
        spec.loader.exec_module(module)
    except Exception as exc:
        sys.modules.pop(name, None)
        raise ServiceLoadError(path, exc) from exc
    return module


def exported_values(module: ModuleType) -> Iterator[tuple[str, Any]]:
    """
    Yield the module's exports: ``__all__`` if defined, else every public
    attribute that is neither a class nor a module. A name listed in
    ``__all__`` but missing from the module raises ServiceLoadError.
    """
    names = getattr(module, "__all__", None)
    if names is not None:
        for name in names:
            try:
                value = getattr(module, name)
            except AttributeError as exc:
                raise ServiceLoadError(Path(getattr(module, "__file__", None) or module.__name__), exc) from exc
            yield name, value
        return
    for name, value in vars(module).items():
        if name.startswith("_") or inspect.isclass(value) or inspect.ismodule(value):
            continue
        yield name, value


def discover(root: str | Path) -> list[ClassifiedService]:
    """
    Walk ``root`` and classify every value exported by its service files.
    Files of a directory come first, then each subdirectory in name order.
    A missing root yields an empty list; a module that fails to import raises ServiceLoadError.
    """
    root = Path(root)
    if not root.exists():
        logger.info(f"No services directory found at {root}, skipping local service discovery")
        return []
    return _walk(root, root)


def _walk(directory: Path, root: Path) -> list[ClassifiedService]:
    entries = sorted(directory.iterdir(), key=lambda p: p.name)
    subdirectories = [e for e in entries if _is_walkable_dir(e)]
    service_files = [e for e in entries if is_service_file(e)]

    found: list[ClassifiedService] = []
    for path in service_files:
        module = load_module(path, root)
        for export_name, value in exported_values(module):
            classified = classify(value, source=path)
            if classified is None:
                logger.debug(
                    "Ignoring export that is not a service",
                    extra={"context": {"export": export_name, "file": str(path)}},
                )
                continue
            kind = "registered" if isinstance(classified, RegisteredService) else "unregistered"
            logger.info(
                f"Found {kind} service",
                extra={"context": {"name": classified.name, "directory": str(directory)}},
            )
            found.append(classified)

    for subdirectory in subdirectories:
        found.extend(_walk(subdirectory, root))
    return found


__all__ = ["SERVICE_FILE_SUFFIX", "discover", "exported_values", "is_service_file", "load_module"]
