from __future__ import annotations

import logging
import importlib
from typing import Any, List
from importlib import metadata

from .base import SiteAdapter
from .generic import GenericAdapter
from .amazon import AmazonAdapter

logger = logging.getLogger(__name__)

_ADAPTER_METHODS = ("matches", "extract_title", "extract_image")


class AdapterRegistry:
    """
    Picks the extraction adapter for a product URL.

    The generic adapter is the fallback and never matched explicitly. Among
    specific adapters the most recently registered one wins, so a plugin can
    override a built-in for the same retailer.
    """

    def __init__(self) -> None:
        self._fallback: SiteAdapter = GenericAdapter()
        self._specific: List[SiteAdapter] = [AmazonAdapter()]

    def register(self, adapter: SiteAdapter) -> None:
        self._specific.append(adapter)
        logger.debug("Registered adapter %s", getattr(adapter, "name", type(adapter).__name__))

    @property
    def adapters(self) -> List[SiteAdapter]:
        return [self._fallback, *self._specific]

    def match(self, url: str) -> SiteAdapter:
        for adapter in reversed(self._specific):
            if adapter.matches(url):
                return adapter
        return self._fallback

    # ---- Discovery ----

    def load_dotted(self, dotted_paths: List[str]) -> int:
        """
        Register adapter classes named as "pkg.module:Class" or "pkg.module.Class".
        Bad entries are logged and skipped.
        """
        added = 0
        for dotted in dotted_paths:
            try:
                self.register(_instantiate(_import_class(dotted)))
                added += 1
            except Exception as exc:
                logger.warning("Failed to load adapter %s: %r", dotted, exc)
        return added

    def discover_entry_points(self, group: str = "link_preview.adapters") -> int:
        """
        Discover third-party adapters installed as entry points.
        Returns count of newly registered adapters.
        """
        added = 0
        for ep in metadata.entry_points().select(group=group):
            try:
                self.register(_instantiate(ep.load()))
                added += 1
            except Exception as exc:
                # Plugins are optional; a broken one must not take the service down.
                logger.warning("Failed to load adapter entry point %s: %r", ep.name, exc)
        return added


def _import_class(dotted: str) -> Any:
    module_name, sep, attr = dotted.partition(":")
    if not sep:
        module_name, _, attr = dotted.rpartition(".")
    module = importlib.import_module(module_name)
    try:
        return getattr(module, attr)
    except AttributeError as exc:
        raise ImportError(f"{module_name!r} has no attribute {attr!r}") from exc


def _instantiate(adapter_cls: Any) -> SiteAdapter:
    adapter = adapter_cls()
    missing = [m for m in _ADAPTER_METHODS if not callable(getattr(adapter, m, None))]
    if missing:
        raise TypeError(f"{adapter_cls!r} is not a site adapter (missing {', '.join(missing)})")
    return adapter
