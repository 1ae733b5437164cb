"""
Domain error taxonomy shared by the identity, storage and portal services.

Each error carries a stable `kind` (the `error` field of JSON responses) and
the HTTP status the web adapter maps it to. Services raise these; only the web
adapter and the admin CLI translate them.
"""

from __future__ import annotations


class PortalError(Exception):
    kind = "error"
    status_code = 400

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.kind)
        self.detail = detail

    def to_payload(self) -> dict[str, str]:
        payload = {"error": self.kind}
        if self.detail:
            payload["detail"] = self.detail
        return payload


class Unauthenticated(PortalError):
    kind = "unauthenticated"
    status_code = 401


class Forbidden(PortalError):
    kind = "forbidden"
    status_code = 403


class BadCredential(PortalError):
    kind = "bad_credential"
    status_code = 401


class PasswordMismatch(BadCredential):
    """Wrong current password on a password change by a signed-in user."""

    status_code = 403


class NotFound(PortalError):
    kind = "not_found"
    status_code = 404


class ValidationFailed(PortalError):
    """Base for request validation failures (400 unless overridden)."""


class MissingField(ValidationFailed):
    kind = "missing_field"


class UnknownRole(ValidationFailed):
    kind = "unknown_role"


class UnknownTag(ValidationFailed):
    kind = "unknown_tag"


class EmptyContent(ValidationFailed):
    kind = "empty_content"


class DuplicateUsername(ValidationFailed):
    kind = "duplicate_username"
    status_code = 409


class AlreadyExists(ValidationFailed):
    kind = "already_exists"
    status_code = 409


class UpstreamError(PortalError):
    kind = "upstream_error"
    status_code = 502


__all__ = [
    "AlreadyExists",
    "BadCredential",
    "DuplicateUsername",
    "EmptyContent",
    "Forbidden",
    "MissingField",
    "NotFound",
    "PasswordMismatch",
    "PortalError",
    "Unauthenticated",
    "UnknownRole",
    "UnknownTag",
    "UpstreamError",
    "ValidationFailed",
]
