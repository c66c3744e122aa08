"""Exception taxonomy and identity-provider error classification."""

from collections.abc import Iterable
from enum import StrEnum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from autoplanner.models import CreatedTask


class AutoplannerError(RuntimeError):
    """Base for every failure the core reports to its caller."""


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------


class AuthErrorKind(StrEnum):
    NOT_SIGNED_IN = "NotSignedIn"
    INVALID_IDENTITY = "InvalidIdentity"
    RESOURCE_UNAVAILABLE = "ResourceUnavailable"
    RESOURCE_NOT_CONFIGURED = "ResourceNotConfigured"
    INTERACTION_REQUIRED = "InteractionRequired"
    CONSENT_REQUIRED = "ConsentRequired"
    UNKNOWN = "Unknown"


AUTH_MESSAGES: dict[AuthErrorKind, str] = {
    AuthErrorKind.NOT_SIGNED_IN: "You are not signed in. Sign in to Microsoft 365 and try again.",
    AuthErrorKind.INVALID_IDENTITY: "This account cannot be used with Planner. Sign in with a work or school account.",
    AuthErrorKind.RESOURCE_UNAVAILABLE: "The sign-in service is unavailable right now. Try again in a moment.",
    AuthErrorKind.RESOURCE_NOT_CONFIGURED: "The app registration is misconfigured. Contact your administrator.",
    AuthErrorKind.INTERACTION_REQUIRED: "Sign-in requires your interaction and could not be completed.",
    AuthErrorKind.CONSENT_REQUIRED: "Permission to access Planner was not granted.",
    AuthErrorKind.UNKNOWN: "Sign-in failed for an unknown reason.",
}

# Office SSO (13xxx) and Entra ID AADSTS numeric codes
_CODE_KINDS: dict[int, AuthErrorKind] = {
    13001: AuthErrorKind.NOT_SIGNED_IN,
    13002: AuthErrorKind.NOT_SIGNED_IN,  # user aborted sign-in
    13003: AuthErrorKind.INVALID_IDENTITY,
    13004: AuthErrorKind.RESOURCE_NOT_CONFIGURED,
    13005: AuthErrorKind.CONSENT_REQUIRED,
    13007: AuthErrorKind.RESOURCE_UNAVAILABLE,
    13012: AuthErrorKind.RESOURCE_NOT_CONFIGURED,  # host does not support SSO
    50058: AuthErrorKind.NOT_SIGNED_IN,
    50020: AuthErrorKind.INVALID_IDENTITY,
    50034: AuthErrorKind.INVALID_IDENTITY,
    50053: AuthErrorKind.INVALID_IDENTITY,
    50057: AuthErrorKind.INVALID_IDENTITY,
    50074: AuthErrorKind.INTERACTION_REQUIRED,
    50076: AuthErrorKind.INTERACTION_REQUIRED,
    50079: AuthErrorKind.INTERACTION_REQUIRED,
    16000: AuthErrorKind.INTERACTION_REQUIRED,
    65001: AuthErrorKind.CONSENT_REQUIRED,
    65004: AuthErrorKind.CONSENT_REQUIRED,
    50001: AuthErrorKind.RESOURCE_UNAVAILABLE,
    65005: AuthErrorKind.RESOURCE_NOT_CONFIGURED,
    70011: AuthErrorKind.RESOURCE_NOT_CONFIGURED,
    500011: AuthErrorKind.RESOURCE_NOT_CONFIGURED,
    700016: AuthErrorKind.RESOURCE_NOT_CONFIGURED,
}

_NAME_KINDS: dict[str, AuthErrorKind] = {
    "interaction_required": AuthErrorKind.INTERACTION_REQUIRED,
    "login_required": AuthErrorKind.NOT_SIGNED_IN,
    "consent_required": AuthErrorKind.CONSENT_REQUIRED,
    "access_denied": AuthErrorKind.NOT_SIGNED_IN,
    "invalid_grant": AuthErrorKind.INTERACTION_REQUIRED,
    "invalid_client": AuthErrorKind.RESOURCE_NOT_CONFIGURED,
    "unauthorized_client": AuthErrorKind.RESOURCE_NOT_CONFIGURED,
    "invalid_scope": AuthErrorKind.RESOURCE_NOT_CONFIGURED,
    "invalid_resource": AuthErrorKind.RESOURCE_NOT_CONFIGURED,
    "temporarily_unavailable": AuthErrorKind.RESOURCE_UNAVAILABLE,
    "server_error": AuthErrorKind.RESOURCE_UNAVAILABLE,
}


def classify_auth_error(error: str | None, error_codes: Iterable[int] = ()) -> AuthErrorKind:
    """Map a provider error to an AuthErrorKind.

    Numeric codes are more specific than the OAuth error name, so the first
    recognised code wins; the name is consulted only when no code matches.
    """
    for code in error_codes:
        if code in _CODE_KINDS:
            return _CODE_KINDS[code]
    if error:
        return _NAME_KINDS.get(error.lower(), AuthErrorKind.UNKNOWN)
    return AuthErrorKind.UNKNOWN


class AuthError(AutoplannerError):
    def __init__(self, kind: AuthErrorKind, description: str | None = None) -> None:
        self.kind = kind
        self.retryable = kind is AuthErrorKind.RESOURCE_UNAVAILABLE
        self.description = description
        super().__init__(AUTH_MESSAGES[kind])

    @property
    def user_message(self) -> str:
        return AUTH_MESSAGES[self.kind]


# ---------------------------------------------------------------------------
# Task service transport
# ---------------------------------------------------------------------------


class GraphError(AutoplannerError):
    """A failed Graph call. status_code is None for transport failures."""

    def __init__(self, operation: str, status_code: int | None, message: str) -> None:
        self.operation = operation
        self.status_code = status_code
        self.message = message
        if status_code is None:
            super().__init__(f"{operation} failed: {message}")
        else:
            super().__init__(f"{operation} failed (HTTP {status_code}): {message}")

    @property
    def is_permission_error(self) -> bool:
        return self.status_code in (401, 403)

    @property
    def is_conflict(self) -> bool:
        return self.status_code in (409, 412)


class ResolutionError(AutoplannerError):
    def __init__(self, operation: str, cause: Exception) -> None:
        self.operation = operation
        self.cause = cause
        super().__init__(f"Could not {operation}: {cause}")


class ValidationError(AutoplannerError):
    """Draft rejected before any network call."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = problems
        super().__init__("; ".join(problems))


# ---------------------------------------------------------------------------
# Task creation pipeline
# ---------------------------------------------------------------------------


class TaskError(AutoplannerError):
    stage = "task"
    summary = "task step failed"

    def __init__(
        self,
        cause: Exception | None = None,
        partial_result: "CreatedTask | None" = None,
    ) -> None:
        self.cause = cause
        self.partial_result = partial_result
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"{self.summary}{detail}")


class BucketResolutionError(TaskError):
    stage = "bucket"
    summary = "bucket could not be resolved, task created without one"


class CreationError(TaskError):
    stage = "create"
    summary = "task not created"


class DescriptionError(TaskError):
    stage = "description"
    summary = "task created, description not saved"


class AssignmentError(TaskError):
    stage = "assignment"
    summary = "task created, assignment failed"


class VersionTagError(TaskError):
    stage = "version"
    summary = "task created, its current version could not be read"


class TaskCancelledError(TaskError):
    stage = "cancelled"
    summary = "task creation abandoned"
