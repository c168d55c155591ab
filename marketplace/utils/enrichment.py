from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

import structlog

logger = structlog.get_logger()

T = TypeVar("T")


@dataclass(frozen=True)
class Enrichment(Generic[T]):
    value: Optional[T]
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def best_effort(step: str, fn: Callable[..., T], *args: Any, default: Optional[T] = None, **log_context: Any) -> Enrichment[T]:
    """Run a secondary read whose failure must never fail the primary write.

    The failure is logged and returned on its own channel; it is not raised.
    """
    try:
        return Enrichment(fn(*args))
    except Exception as exc:
        logger.warning(
            "enrichment_failed",
            step=step,
            error_type=type(exc).__name__,
            error=str(exc),
            **log_context,
        )
        return Enrichment(default, error=exc)
