"""Exception hierarchy for the Cat Generator.

Two tiers of failure exist in the application:

- **Input validation errors** are the caller's fault (no image, no name) and
  are always reported to the caller as an HTTP 400 before any model call.
- **Dependency errors** (model unreachable, unparsable output, missing
  fields) are absorbed by :func:`catgen.core.fallback.with_fallback` and
  replaced with a canned payload.
"""


class CatgenError(Exception):
    """Base class for all Cat Generator errors."""


class InputValidationError(CatgenError):
    """The request is missing a required field.

    The message is returned verbatim to the caller in the ``error`` field.
    """

    def __init__(self, message: str, status_code: int = 400) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


class AssetMissingError(CatgenError):
    """A mandatory layer directory is empty or a layer file is unreadable."""


class ModelResponseError(CatgenError):
    """The model answered, but not with the content that was asked for."""


class InvalidStateError(CatgenError):
    """A client action was requested from a state that does not allow it."""
