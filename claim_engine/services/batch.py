"""
Batch fold.

Batch operations process items sequentially and fold each outcome into a
BatchResult instead of letting one failure abort the rest.
"""

from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Generic, Iterable, Optional, TypeVar

from claim_engine.utils.errors import BatchItemError, ClaimEngineError, describe_error
from claim_engine.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")
R = TypeVar("R")


@dataclass
class BatchFailure(Generic[T]):
    item: T
    error: BatchItemError

    def to_dict(self) -> dict[str, Any]:
        return {"item": self.item, "error": self.error.message}


@dataclass
class BatchResult(Generic[T, R]):
    """{successes, failures} of a batch run."""

    successes: list[R] = field(default_factory=list)
    failures: list[BatchFailure[T]] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.successes) + len(self.failures)

    @property
    def all_succeeded(self) -> bool:
        return not self.failures

    def fold(self, item: T, outcome: "R | BatchItemError") -> "BatchResult[T, R]":
        if isinstance(outcome, BatchItemError):
            self.failures.append(BatchFailure(item=item, error=outcome))
        else:
            self.successes.append(outcome)
        return self


async def run_batch(
    items: Iterable[T],
    operation: Callable[[T], Awaitable[R]],
    item_key: Optional[Callable[[T], Optional[str]]] = None,
) -> BatchResult[T, R]:
    """
    Apply `operation` to each item in order and fold the outcomes.

    Domain errors and unexpected exceptions alike become BatchItemError
    entries. Unexpected ones are logged with a sanitized message.
    """
    result: BatchResult[T, R] = BatchResult()
    for item in items:
        key = item_key(item) if item_key else None
        try:
            outcome = await operation(item)
        except ClaimEngineError as e:
            result.fold(item, BatchItemError(key, e))
        except Exception as e:
            logger.error(f"Batch item {key} failed: {type(e).__name__}: {describe_error(e)}")
            result.fold(item, BatchItemError(key, e))
        else:
            result.fold(item, outcome)
    return result
