"""vm-catalog package."""

__all__ = [
    "blueprints",
    "cache",
    "cli",
    "config",
    "constants",
    "constraints",
    "exceptions",
    "host",
    "image_host",
    "models",
    "simplestreams",
    "utils",
]
