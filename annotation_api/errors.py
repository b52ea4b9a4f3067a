"""
Error taxonomy for the annotation service.

Services raise these; the application maps each to an HTTP response
using the class's ``status_code``.
"""


class AnnotationError(Exception):
    """Base class for locally detected, non-retryable request failures."""

    status_code = 400

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(AnnotationError):
    """A filter value or payload field could not be parsed."""

    status_code = 400


class NotFoundError(AnnotationError):
    """No resource with the requested id."""

    status_code = 404


class InvalidStateError(AnnotationError):
    """The resource is in a state that does not allow the operation."""

    status_code = 409


class ForbiddenError(AnnotationError):
    """The acting user may not perform the operation."""

    status_code = 403


class ConfigurationError(Exception):
    """The service settings describe something this service cannot run on."""
