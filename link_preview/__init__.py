"""Product link previews with a persistent TTL cache."""

from .version import __version__

__all__ = ["__version__"]
