"""Plugin registry, hook chaining and keyed object pool for a database gateway."""

__version__ = "0.1.0"

__all__ = [
    "config",
    "errors",
    "hooks",
    "plugin",
    "plugin_utils",
    "pool",
    "registry",
    "usagereport",
]