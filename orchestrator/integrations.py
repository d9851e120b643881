"""Discovery and initialization of third-party integration packages.

Integrations are distributions declared as dependencies of the host
distribution whose name starts with the integration prefix. Each one
exposes, at its ``integration`` attribute or as the module itself, a value
of the integration shape::

    type = "inferable-integration"
    name = "slack"
    version = "0.1.0"

    async def initialize(runtime):
        return runtime.service({"name": "slack", "functions": [...]})
"""

from __future__ import annotations

import asyncio
import importlib
import importlib.metadata
import inspect
import logging
import re
from typing import Any, Iterable

from .models import (
    IntegrationDescriptor,
    IntegrationError,
    IntegrationShape,
    RegisteredServiceShape,
    as_startable,
    validate_shape,
)

logger = logging.getLogger(__name__)

HOST_DISTRIBUTION = "servicehost"
INTEGRATION_PREFIX = "inferable-"
DEFAULT_EXPORT = "integration"

_REQUIREMENT_NAME = re.compile(r"^\s*([A-Za-z0-9][A-Za-z0-9._-]*)")
_EXTRA_MARKER = re.compile(r"\bextra\s*==")


def declared_dependencies(distribution: str = HOST_DISTRIBUTION) -> list[str]:
    """Names of the runtime requirements declared by ``distribution`` (extras excluded)."""
    try:
        requirements = importlib.metadata.requires(distribution) or []
    except importlib.metadata.PackageNotFoundError:
        logger.debug(f"Distribution {distribution} is not installed, no declared dependencies")
        return []
    names = []
    for requirement in requirements:
        if _EXTRA_MARKER.search(requirement):
            continue
        match = _REQUIREMENT_NAME.match(requirement)
        if match:
            names.append(match.group(1))
    return names


def module_name_for(package: str) -> str:
    return package.replace("-", "_").replace(".", "_").lower()


def _installed_version(package: str, module: Any) -> str | None:
    try:
        return importlib.metadata.version(package)
    except importlib.metadata.PackageNotFoundError:
        return getattr(module, "__version__", None)


def load_integration(package: str) -> IntegrationDescriptor | None:
    """Import ``package`` and validate its export. None when it is not an integration."""
    try:
        module = importlib.import_module(module_name_for(package))
    except ImportError as exc:
        logger.warning(
            "Declared integration package could not be imported",
            extra={"context": {"name": package, "error": str(exc)}},
        )
        return None
    candidate = getattr(module, DEFAULT_EXPORT, module)
    parsed, errors = validate_shape(IntegrationShape, candidate)
    if parsed is None:
        logger.debug(
            "Found integration package, but it does not match the integration schema",
            extra={"context": {"name": package, "version": _installed_version(package, module), "errors": errors}},
        )
        return None
    logger.info("Found integration", extra={"context": {"name": parsed.name, "version": parsed.version}})
    return IntegrationDescriptor(
        name=parsed.name,
        version=parsed.version,
        initialize=parsed.initialize,
        package=package,
    )


def load_integrations(
    package_names: Iterable[str] | None = None,
    prefix: str = INTEGRATION_PREFIX,
) -> list[IntegrationDescriptor]:
    """
    Resolve integrations among ``package_names`` (defaults to the host's declared dependencies).
    Packages outside the prefix are ignored; packages that do not match the shape are skipped.
    """
    if package_names is None:
        package_names = declared_dependencies()
    descriptors = []
    for package in package_names:
        if not package.startswith(prefix):
            continue
        descriptor = load_integration(package)
        if descriptor is not None:
            descriptors.append(descriptor)
    return descriptors


async def _initialize(descriptor: IntegrationDescriptor, runtime: Any) -> Any:
    service = descriptor.initialize(runtime)
    if inspect.isawaitable(service):
        service = await service
    parsed, errors = validate_shape(RegisteredServiceShape, service)
    if parsed is None:
        raise IntegrationError(descriptor.name, f"initialize() did not return a startable service: {errors}")
    return as_startable(service)


async def initialize_integrations(descriptors: list[IntegrationDescriptor], runtime: Any) -> list[Any]:
    """
    Call every ``initialize(runtime)`` concurrently and wait for all of them.
    The first failure propagates: integration initialization is all-or-nothing.
    """
    return list(await asyncio.gather(*(_initialize(d, runtime) for d in descriptors)))


__all__ = [
    "DEFAULT_EXPORT",
    "HOST_DISTRIBUTION",
    "INTEGRATION_PREFIX",
    "declared_dependencies",
    "initialize_integrations",
    "load_integration",
    "load_integrations",
]
