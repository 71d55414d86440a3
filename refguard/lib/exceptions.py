from typing import Tuple

from refguard.lib.constants import HTTP_CONFLICT, HTTP_INTERNAL_SERVER_ERROR


class RefGuardError(Exception):
    """Base class for the errors this package raises."""


class ConfigurationError(RefGuardError):
    r"""
    Raised when the reference graph or the validation settings are misconfigured.

    Example: validation was requested for a parent type that was never registered.
    """


class InfrastructureError(RefGuardError):
    r"""
    Raised when the references to a parent could not be counted (e.g. the store was unreachable,
    a query failed, or the validation ran out of time).

    Note: This is never the same thing as "nothing references this parent".
    """


class ReferentialIntegrityViolation(RefGuardError):
    r"""
    Raised when a mutation was blocked because other documents still reference the parent.
    """

    def __init__(self, result):
        super().__init__(result.message)
        self.result = result

    @property
    def violations(self):
        return self.result.violations

    def as_payload(self) -> dict:
        r"""
        Returns the machine-readable representation of the violation, which the API layer
        renders verbatim in its 409 response.
        """
        return self.result.as_payload()


def translate_error(error: Exception) -> Tuple[int, dict]:
    r"""
    Returns the `(status_code, body)` an HTTP layer should respond with for the specified error.

    A blocked mutation becomes a 409 with the entity-by-entity breakdown. Anything else becomes
    a 500 with no breakdown, since nothing was determined.
    """
    if isinstance(error, ReferentialIntegrityViolation):
        return HTTP_CONFLICT, error.as_payload()
    return HTTP_INTERNAL_SERVER_ERROR, {"message": str(error)}
