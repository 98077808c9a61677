"""Error taxonomy for the HTML deploy service.

Every failure the store, the ingestion adapters or the façades can report is a
subclass of DeployError. Each carries the HTTP status the REST façade should
answer with, so routes never translate exceptions by hand.

    ValidationError  400  missing, oversized or wrong-type input
    InvalidName      400  name fails the sanitizer round-trip
    FetchError       400  remote fetch failed (upstream's fault)
    FetchTimeout     400  remote fetch exceeded its timeout
    AuthError        401  bad or missing credential
    PathViolation    403  resolved path escapes the storage root
    NotFound         404  no such deployed file
    StorageError     500  underlying filesystem failure
"""

from __future__ import annotations


class DeployError(Exception):
    """Base class for all deploy service failures.

    Attributes:
        status_code: HTTP status the REST façade answers with.
        expose: Whether the message is safe to show outside development.
    """

    status_code: int = 500
    expose: bool = True

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(DeployError):
    status_code = 400


class InvalidName(DeployError):
    status_code = 400


class FetchError(DeployError):
    """Remote fetch failed.

    Attributes:
        upstream_status: HTTP status returned by the remote server, if any.
    """

    status_code = 400

    def __init__(self, message: str, upstream_status: int | None = None) -> None:
        super().__init__(message)
        self.upstream_status = upstream_status


class FetchTimeout(FetchError):
    pass


class AuthError(DeployError):
    status_code = 401


class PathViolation(DeployError):
    status_code = 403


class NotFound(DeployError):
    status_code = 404


class StorageError(DeployError):
    """Filesystem failure. Raw OS messages may contain internal paths."""

    status_code = 500
    expose = False
