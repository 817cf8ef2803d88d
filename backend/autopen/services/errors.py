from __future__ import annotations

from typing import Any

# PostgREST / Postgres codes for "relation does not exist"
SCHEMA_MISSING_CODES = {"42P01", "PGRST205"}
RLS_VIOLATION_CODE = "42501"

SCHEMA_SETUP_INSTRUCTIONS = (
    "The database schema has not been provisioned. Apply the migrations in "
    "supabase/migrations (creator_contents, projects, saved_brain_dumps, "
    "profiles) from the Supabase SQL editor or with `supabase db push`, then "
    "reload this page."
)


class DataAccessError(Exception):
    """Base class for every failure a repository can surface."""

    code: str | None = None

    def __init__(self, message: str, *, code: str | None = None, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        self.details = details


class AuthenticationError(DataAccessError):
    pass


class NetworkError(DataAccessError):
    pass


class SchemaNotProvisionedError(DataAccessError):
    """Referenced table does not exist on the backend."""

    setup_instructions = SCHEMA_SETUP_INSTRUCTIONS


class NotFoundError(DataAccessError):
    pass


class InvalidIdentifierError(DataAccessError):
    pass


class PermissionDeniedError(DataAccessError):
    pass


class BackendError(DataAccessError):
    pass


def describe_error(exc: BaseException) -> str:
    """Human-readable message for an error stored on a repository."""
    if isinstance(exc, AuthenticationError):
        return exc.message or "User not authenticated"
    if isinstance(exc, NetworkError):
        return "Network connection issue: Unable to connect to the database"
    if isinstance(exc, SchemaNotProvisionedError):
        return "Database table not found. The system needs to be initialized with the proper schema."
    if isinstance(exc, PermissionDeniedError):
        return "Permission error: Please try logging out and logging back in."
    if isinstance(exc, DataAccessError):
        return exc.message
    return str(exc) or exc.__class__.__name__


def error_from_response(status_code: int, body: Any) -> DataAccessError:
    """
    Map a PostgREST / GoTrue error response to the error taxonomy.
    """
    code: str | None = None
    message = f"Backend request failed with status {status_code}"
    if isinstance(body, dict):
        code = body.get("code") or body.get("error_code")
        message = (
            body.get("message")
            or body.get("msg")
            or body.get("error_description")
            or body.get("error")
            or message
        )
    elif isinstance(body, str) and body.strip():
        message = body.strip()

    code = str(code) if code is not None else None

    if code in SCHEMA_MISSING_CODES:
        return SchemaNotProvisionedError(message, code=code, details=body)
    if code == RLS_VIOLATION_CODE or "row-level security" in message.lower():
        return PermissionDeniedError(message, code=code, details=body)
    if status_code == 401:
        return AuthenticationError(message, code=code, details=body)
    if status_code == 404:
        return NotFoundError(message, code=code, details=body)
    if status_code == 403:
        return PermissionDeniedError(message, code=code, details=body)
    if code == "22P02":
        # invalid input syntax, e.g. a non-UUID id reaching the database
        return InvalidIdentifierError(message, code=code, details=body)
    return BackendError(message, code=code, details=body)
