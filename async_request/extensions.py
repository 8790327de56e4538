"""Filter registry for adjusting outbound dispatch parameters.

Callbacks are keyed by ``(identifier, ExtensionPoint)``. Each receives the
current value and returns the (possibly replaced) value; callbacks run in
ascending priority, ties in registration order.

String hook names such as ``"wp_email_notify_1_post_args"`` are still accepted
by :meth:`FilterRegistry.add_filter` for callers that address hooks by name.
"""
from __future__ import annotations

import itertools
import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional

from async_request.utils import get_logger

logger = get_logger(__name__)

FilterCallback = Callable[[Any], Any]


class ExtensionPoint(str, Enum):
    QUERY_ARGS = "query_args"
    QUERY_URL = "query_url"
    POST_ARGS = "post_args"
    # Site wide, not scoped to an identifier
    SSL_VERIFY = "https_local_ssl_verify"

    @property
    def is_global(self) -> bool:
        return self is ExtensionPoint.SSL_VERIFY


@dataclass(order=True)
class _Registration:
    priority: int
    seq: int
    callback: FilterCallback = field(compare=False)


class FilterRegistry:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._filters: dict[tuple[Optional[str], ExtensionPoint], list[_Registration]] = {}
        self._seq = itertools.count()

    @staticmethod
    def _key(point: ExtensionPoint, identifier: Optional[str]) -> tuple[Optional[str], ExtensionPoint]:
        if point.is_global:
            return (None, point)
        if not identifier:
            raise ValueError(f"Extension point '{point.value}' requires an identifier")
        return (identifier, point)

    def add(
        self,
        point: ExtensionPoint,
        callback: FilterCallback,
        identifier: Optional[str] = None,
        priority: int = 10,
    ) -> None:
        key = self._key(point, identifier)
        with self._lock:
            bucket = self._filters.setdefault(key, [])
            bucket.append(_Registration(priority, next(self._seq), callback))
            bucket.sort()
        logger.debug("Filter registered", point=point.value, identifier=identifier, priority=priority)

    def remove(self, point: ExtensionPoint, callback: FilterCallback, identifier: Optional[str] = None) -> bool:
        key = self._key(point, identifier)
        with self._lock:
            bucket = self._filters.get(key, [])
            kept = [reg for reg in bucket if reg.callback is not callback]
            removed = len(kept) != len(bucket)
            if kept:
                self._filters[key] = kept
            else:
                self._filters.pop(key, None)
        return removed

    def has(self, point: ExtensionPoint, identifier: Optional[str] = None) -> bool:
        with self._lock:
            return bool(self._filters.get(self._key(point, identifier)))

    def apply(self, point: ExtensionPoint, value: Any, identifier: Optional[str] = None) -> Any:
        key = self._key(point, identifier)
        with self._lock:
            callbacks = [reg.callback for reg in self._filters.get(key, [])]
        for callback in callbacks:
            value = callback(value)
        return value

    def add_filter(self, hook_name: str, callback: FilterCallback, priority: int = 10) -> None:
        """Register by string hook name (``"{identifier}_{point}"``)."""
        point, identifier = parse_hook_name(hook_name)
        self.add(point, callback, identifier=identifier, priority=priority)

    def clear(self) -> None:
        with self._lock:
            self._filters.clear()


def parse_hook_name(hook_name: str) -> tuple[ExtensionPoint, Optional[str]]:
    if hook_name == ExtensionPoint.SSL_VERIFY.value:
        return ExtensionPoint.SSL_VERIFY, None
    for point in (ExtensionPoint.QUERY_ARGS, ExtensionPoint.QUERY_URL, ExtensionPoint.POST_ARGS):
        suffix = "_" + point.value
        if hook_name.endswith(suffix) and len(hook_name) > len(suffix):
            return point, hook_name[: -len(suffix)]
    raise ValueError(f"Unknown hook name '{hook_name}'")


__all__ = ["ExtensionPoint", "FilterRegistry", "parse_hook_name"]
