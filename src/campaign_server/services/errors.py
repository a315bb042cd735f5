"""Domain error raised by service functions."""

from __future__ import annotations


class ServiceError(Exception):
    """A request failed a domain rule.

    Args:
        status_code: HTTP status the API layer should answer with.
        message: Client-facing explanation, returned as ``detail``.
    """

    def __init__(self, status_code: int, message: str) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.message = message


def bad_request(message: str) -> ServiceError:
    return ServiceError(400, message)


def forbidden(message: str = "Forbidden.") -> ServiceError:
    return ServiceError(403, message)


def not_found(message: str) -> ServiceError:
    return ServiceError(404, message)


def conflict(message: str) -> ServiceError:
    return ServiceError(409, message)
