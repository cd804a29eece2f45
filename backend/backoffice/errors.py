# Overview: Typed failures raised by the form lifecycle services and mapped to HTTP responses.

"""
Form lifecycle errors.

WHY: Every guard in the approval workflow fails with a distinct kind so the
HTTP layer can map it to a status code without string matching, and so tests
can assert on the kind instead of the message.

Each error carries:
- status_code: HTTP status used by the blueprint error handler
- message: human readable reason
- data: optional structured payload (e.g. form number/status/type)
"""

from __future__ import annotations


class FormError(Exception):
    """Base class for all form lifecycle failures."""

    status_code = 400
    default_message = "Form error"

    def __init__(self, message: str | None = None, data: dict | None = None):
        self.message = message or self.default_message
        self.data = data
        super().__init__(self.message)

    def to_dict(self) -> dict:
        payload = {"error": self.message}
        if self.data is not None:
            payload["data"] = self.data
        return payload


class NotFound(FormError):
    status_code = 404
    default_message = "Not found"


class Forbidden(FormError):
    status_code = 403
    default_message = "Forbidden"


class InvalidData(FormError):
    status_code = 400
    default_message = "Invalid data"


class OnlySmallestUnitAllowed(InvalidData):
    default_message = "Only can use smallest item unit"


class AlreadyRejected(FormError):
    status_code = 422
    default_message = "form rejected"


class AlreadyApproved(FormError):
    status_code = 422
    default_message = "form already approved"


class StockWouldGoNegative(FormError):
    status_code = 422
    default_message = "Stock can not be minus"


class SettingJournalMissing(FormError):
    status_code = 422
    default_message = "Journal setting not found"


class ReasonRequired(FormError):
    status_code = 422
    default_message = "reason cannot empty"


class FormAlreadyReferenced(InvalidData):
    """The form was consumed by a downstream document (done=True)."""
    status_code = 422
    default_message = "Can not change already referenced form"
