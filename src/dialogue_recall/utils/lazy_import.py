"""Deferred imports for optional backends.

The mongo backend is only imported when a client actually connects, so
the core package imports without the driver installed.
"""

from collections.abc import Callable
from importlib import import_module

__all__ = [
    "lazy_import",
]


def lazy_import(
    module_name: str,
    name: str | None = None,
    install_hint: str | None = None,
) -> Callable[[], object]:
    """Lazily import a module or an attribute from a module.

    Args:
        module_name: Dotted module path
        name: Attribute to fetch from the module, or None for the module itself
        install_hint: Distribution to suggest when the import fails

    Returns:
        Zero-argument loader returning the module or attribute
    """

    def _load() -> object:
        try:
            mod = import_module(module_name)
        except ModuleNotFoundError as e:
            if install_hint is None:
                raise
            raise ModuleNotFoundError(
                f"{module_name} is required for this backend; install {install_hint}"
            ) from e
        return getattr(mod, name) if name else mod

    return _load
