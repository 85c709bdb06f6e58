"""
Ordered fallback over pipeline strategies.

Both two-tier chains of the pipeline (captions -> speech recognition,
LLM formatting -> standard formatting) are lists of strategies tried in
order. A strategy's recoverable errors are logged and move the chain
on; anything else propagates unchanged.
"""

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Strategy(Generic[T]):
    """
    One step of a fallback chain.

    Attributes:
        name: Label recorded on success and in logs
        run: Zero-argument coroutine function producing the result
        recoverable: Exception types that fall through to the next strategy
    """

    name: str
    run: Callable[[], Awaitable[T]]
    recoverable: tuple[type[Exception], ...] = ()


@dataclass
class StrategyResult(Generic[T]):
    """
    Outcome of a fallback chain.

    Attributes:
        value: Result of the first strategy that succeeded
        strategy: Name of that strategy
        failures: (name, error) for every strategy that failed before it
    """

    value: T
    strategy: str
    failures: list[tuple[str, Exception]] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        """True if a higher-preference strategy failed."""
        return bool(self.failures)


class FallbackExhausted(Exception):
    """Raised when every strategy failed recoverably."""

    def __init__(self, failures: list[tuple[str, Exception]]):
        self.failures = failures
        summary = "; ".join(f"{name}: {error}" for name, error in failures)
        super().__init__(f"All strategies failed ({summary})")


async def first_successful(strategies: list[Strategy[T]]) -> StrategyResult[T]:
    """
    Run strategies in order and return the first success.

    Args:
        strategies: Non-empty list, highest preference first

    Returns:
        StrategyResult naming the strategy that succeeded

    Raises:
        FallbackExhausted: If every strategy failed recoverably
        Exception: Any non-recoverable error, unchanged
    """
    if not strategies:
        raise ValueError("At least one strategy is required")

    failures: list[tuple[str, Exception]] = []

    for strategy in strategies:
        try:
            value = await strategy.run()
        except strategy.recoverable as e:
            logger.warning(f"{strategy.name} failed: {e}, using fallback")
            failures.append((strategy.name, e))
            continue

        if failures:
            logger.info(f"Fallback succeeded with {strategy.name}")
        return StrategyResult(value=value, strategy=strategy.name, failures=failures)

    raise FallbackExhausted(failures)
