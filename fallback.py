"""Ordered "first success wins" evaluation of fallback strategies."""
import inspect
import logging
from typing import Any, Callable, Optional, Sequence

logger = logging.getLogger(__name__)


def _strategy_name(strategy: Callable) -> str:
    return getattr(strategy, "__name__", None) or getattr(strategy, "name", None) or repr(strategy)


async def first_success(
    strategies: Sequence[Callable[..., Any]],
    *args: Any,
    accept: Callable[[Any], bool] = bool,
    **kwargs: Any,
) -> Optional[Any]:
    """
    Call each strategy with ``*args``/``**kwargs`` in order and return the
    first result that ``accept`` approves.

    Strategies may be plain or async callables. A strategy that raises is
    logged and skipped; it never stops the chain. Returns None when no
    strategy produced an accepted result.
    """
    for strategy in strategies:
        name = _strategy_name(strategy)
        try:
            result = strategy(*args, **kwargs)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            logger.warning(f"Strategy {name} failed: {e}")
            continue

        if accept(result):
            logger.debug(f"Strategy {name} succeeded")
            return result
        logger.debug(f"Strategy {name} produced nothing usable")
    return None
