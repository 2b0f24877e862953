"""
Error type shared by the refresh pipeline, the query service and the views.

There is one exception class, ``CountryAPIError``, tagged with an
``ErrorKind``. The kind decides the HTTP status and the default message;
``as_payload()`` gives the JSON body every error response uses::

    {"error": "<message>", "details": <optional>}
"""
import enum
import logging

from rest_framework import exceptions, status
from rest_framework.response import Response
from rest_framework.views import exception_handler

logger = logging.getLogger(__name__)


class ErrorKind(enum.Enum):
    SOURCE_UNAVAILABLE = (status.HTTP_503_SERVICE_UNAVAILABLE, "External data source unavailable")
    PERSISTENCE = (status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")
    NOT_FOUND = (status.HTTP_404_NOT_FOUND, "Country not found")
    VALIDATION = (status.HTTP_400_BAD_REQUEST, "Validation failed")
    REFRESH_IN_PROGRESS = (status.HTTP_409_CONFLICT, "Refresh already in progress")
    RENDER_FAILED = (status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to generate summary image")

    def __init__(self, status_code, default_message):
        self.status_code = status_code
        self.default_message = default_message


class CountryAPIError(Exception):

    def __init__(self, kind, message=None, details=None):
        self.kind = kind
        self.message = message or kind.default_message
        self.details = details
        self.source = None
        super().__init__(self.message)

    @property
    def status_code(self):
        return self.kind.status_code

    def as_payload(self):
        payload = {"error": self.message}
        if self.details:
            payload["details"] = self.details
        return payload

    def __repr__(self):
        return f"CountryAPIError({self.kind.name}, {self.message!r})"

    # -- constructors, one per kind ------------------------------------------

    @classmethod
    def source_unavailable(cls, source_name):
        error = cls(ErrorKind.SOURCE_UNAVAILABLE, details=f"Could not fetch data from {source_name}")
        error.source = source_name
        return error

    @classmethod
    def persistence(cls):
        return cls(ErrorKind.PERSISTENCE)

    @classmethod
    def not_found(cls, message=None):
        return cls(ErrorKind.NOT_FOUND, message)

    @classmethod
    def validation(cls, details):
        return cls(ErrorKind.VALIDATION, details=details)

    @classmethod
    def refresh_in_progress(cls):
        return cls(ErrorKind.REFRESH_IN_PROGRESS)

    @classmethod
    def render_failed(cls):
        return cls(ErrorKind.RENDER_FAILED)


def error_response(error):
    return Response(error.as_payload(), status=error.status_code)


def api_exception_handler(exc, context):
    """DRF ``EXCEPTION_HANDLER``: every failure leaves as ``{"error": ...}``."""
    if isinstance(exc, CountryAPIError):
        if exc.status_code >= 500:
            logger.error("%r while handling %s", exc, _view_name(context), exc_info=exc.__cause__)
        return error_response(exc)

    if isinstance(exc, exceptions.ValidationError):
        return error_response(CountryAPIError.validation(exc.detail))

    response = exception_handler(exc, context)
    if response is not None:
        detail = response.data.get("detail") if isinstance(response.data, dict) else None
        response.data = {"error": str(detail) if detail else "Request failed"}
        return response

    # never leak internals of unexpected failures to the caller
    logger.exception("Unexpected error while handling %s", _view_name(context))
    return Response({"error": "Internal server error"}, status=status.HTTP_500_INTERNAL_SERVER_ERROR)


def _view_name(context):
    view = context.get("view") if context else None
    return type(view).__name__ if view is not None else "request"
