"""Error taxonomy shared by the workout engine and the import pipeline.

ValidationError and ParseError are fatal for the operation that raised them.
NotFoundError and ExternalResolutionError are recoverable: callers skip the
smallest affected unit (one exercise, one import item) and carry on.
"""

from __future__ import annotations


class CairnError(Exception):
    code = "error"

    def __init__(
        self,
        message: str,
        *,
        code: str | None = None,
        field: str | None = None,
        docs_hint: str | None = None,
    ) -> None:
        super().__init__(message)
        if code is not None:
            self.code = code
        self.field = field
        self.docs_hint = docs_hint

    def to_dict(self) -> dict[str, str | None]:
        return {
            "error_code": self.code,
            "error_field": self.field,
            "docs_hint": self.docs_hint,
            "message": str(self),
        }


class ValidationError(CairnError):
    """Malformed input, raised before anything is written."""

    code = "validation_error"


class NotFoundError(CairnError):
    code = "not_found"


class ExternalResolutionError(CairnError):
    """A catalog or provider lookup failed for a single item."""

    code = "external_resolution_error"


class ParseError(CairnError):
    """An adapter could not decode its source payload."""

    code = "parse_error"
