from __future__ import annotations

import importlib
import inspect

import structlog

from genbatch.exceptions import ConfigurationError
from genbatch.providers.base import BaseProvider

__all__ = [
    "BaseProvider",
    "load_provider",
]

log = structlog.get_logger(__name__)


def load_provider(path: str) -> BaseProvider:
    """
    Import a provider from a ``package.module:attribute`` path.

    Parameters
    ----------
    path : str
        Import path. The attribute may be a ``BaseProvider`` subclass,
        instantiated without arguments, or a ready provider instance.

    Returns
    -------
    BaseProvider
        Provider instance.

    Raises
    ------
    ConfigurationError
        If the path is malformed, cannot be imported or is not a provider.
    """
    module_name, _, attr_name = path.partition(":")
    if not module_name or not attr_name:
        raise ConfigurationError(f"Provider path '{path}' must look like 'package.module:Provider'")
    try:
        module = importlib.import_module(name=module_name)
    except ImportError as error:
        raise ConfigurationError(f"Cannot import provider module '{module_name}'") from error
    try:
        attr = getattr(module, attr_name)
    except AttributeError as error:
        raise ConfigurationError(f"Module '{module_name}' has no attribute '{attr_name}'") from error

    if inspect.isclass(attr) and issubclass(attr, BaseProvider) and not inspect.isabstract(attr):
        provider = attr()
    elif isinstance(attr, BaseProvider):
        provider = attr
    else:
        raise ConfigurationError(f"'{path}' is not a BaseProvider subclass or instance")

    log.debug(event="Loaded provider", path=path, provider=provider.name)
    return provider
