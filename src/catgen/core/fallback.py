"""Fallback combinator for model-backed operations.

Every generation step follows the same policy: run the operation, and if the
model call or the parsing of its answer fails, hand the caller a plausible
canned value instead of an error.  Input validation errors are the one
exception, they always propagate.

Usage
-----
::

    result = with_fallback(
        lambda: infer_personality(model, image, name),
        FALLBACK_PERSONALITY,
        label="personality",
    )
    payload = {"personalityType": result.value}
    if result.error:
        payload["error"] = result.error
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from catgen.core.errors import InputValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class FallbackResult(Generic[T]):
    """Outcome of :func:`with_fallback`.

    Attributes:
        value: The operation's result, or the fallback value.
        error: ``None`` on success, otherwise a short description of why the
            fallback was used.
    """

    value: T
    error: str | None = None

    @property
    def used_fallback(self) -> bool:
        """Whether the value is the canned fallback."""
        return self.error is not None


def with_fallback(
    operation: Callable[[], T],
    fallback: T | Callable[[], T],
    *,
    label: str,
    error_message: str | None = None,
) -> FallbackResult[T]:
    """Run *operation*, substituting *fallback* on any dependency failure.

    Args:
        operation: Zero-argument callable performing the model call and
            parsing its answer.
        fallback: Either the fallback value itself or a zero-argument
            factory producing it (used for randomised fallbacks such as cat
            names).
        label: Short name of the step, used in log lines.
        error_message: Message attached to the result when the fallback is
            used.  Defaults to ``"Failed to generate <label>"``.

    Returns:
        A :class:`FallbackResult` holding either the real value or the
        fallback with an error message.

    Raises:
        InputValidationError: Never absorbed; validation belongs to the
            caller.
    """
    try:
        return FallbackResult(value=operation())
    except InputValidationError:
        raise
    except Exception:
        logger.exception("Generating %s failed, using fallback.", label)
        value = fallback() if callable(fallback) else fallback
        return FallbackResult(value=value, error=error_message or f"Failed to generate {label}")
