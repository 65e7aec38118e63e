from collections.abc import Callable
from functools import wraps

from loguru import logger

type ErrorFactory = Callable[[str], BaseException]


def rethrow[**P, R](
    catch: type[BaseException] | tuple[type[BaseException], ...],
    into: ErrorFactory,
    action: str | None = None,
) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """Re-raise ``catch`` errors from the wrapped call as ``into(message)``.

    The message names the failed action (``action`` or the function's
    qualified name) followed by the original error text; the original error
    is kept as ``__cause__``.
    """

    def decorator(fn: Callable[P, R]) -> Callable[P, R]:
        what = action or fn.__qualname__

        @wraps(fn)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            try:
                return fn(*args, **kwargs)
            except catch as e:
                logger.debug("{what} failed: {err!r}", what=what, err=e)
                raise into(f"{what} failed: {e}") from e

        return wrapper

    return decorator
