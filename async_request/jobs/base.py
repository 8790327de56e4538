"""Job contract for background requests."""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional, Protocol, runtime_checkable


@runtime_checkable
class AsyncJob(Protocol):
    """What a dispatcher needs from a job.

    Optional attributes, read with ``getattr``/``hasattr``:

    - ``prefix``: identifier prefix (default from settings, ``"wp"``)
    - ``use_rest``: fixes the transport for this job type
    - ``query_args`` / ``query_url`` / ``post_args``: used verbatim instead of
      the computed values (filters are skipped too)
    - ``has_permission(ctx)``: replaces the default capability check
    """
    job_name: str

    def execute(self, payload: Any) -> Any: ...


class BackgroundJob(ABC):
    """Convenience base; subclasses set ``job_name`` and implement ``execute``.

    ``execute`` may be sync or async. Its return value is ignored and any
    exception it raises reaches the host unchanged, so jobs log their own
    failures.
    """
    prefix: Optional[str] = None
    job_name: str = "async_request"
    use_rest: Optional[bool] = None

    @abstractmethod
    def execute(self, payload: Any) -> Any:
        raise NotImplementedError


__all__ = ["AsyncJob", "BackgroundJob"]
