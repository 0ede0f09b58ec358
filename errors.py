from typing import Any, Optional


class LifecycleError(Exception):
    """Base class for errors raised by the donation/request workflow."""

    status_code = 400
    code = "lifecycle_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(LifecycleError):
    status_code = 422
    code = "validation_error"

    def __init__(self, message: str, errors: Optional[list[dict[str, Any]]] = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class NotFound(LifecycleError):
    status_code = 404
    code = "not_found"


class DonationNotFound(NotFound):
    code = "donation_not_found"

    def __init__(self, donation_id: int) -> None:
        super().__init__(f"Donation {donation_id} not found")
        self.donation_id = donation_id


class RequestNotFound(NotFound):
    code = "request_not_found"

    def __init__(self, request_id: int) -> None:
        super().__init__(f"Request {request_id} not found")
        self.request_id = request_id


class UserNotFound(NotFound):
    code = "user_not_found"
    label = "User"

    def __init__(self, user_id: int) -> None:
        super().__init__(f"{self.label} {user_id} not found")
        self.user_id = user_id


class RequesterNotFound(UserNotFound):
    code = "requester_not_found"
    label = "Requester"


class InvalidTransition(LifecycleError):
    status_code = 409
    code = "invalid_transition"

    def __init__(
        self,
        entity: str,
        current: Optional[str],
        target: str,
        reason: Optional[str] = None,
    ) -> None:
        if current is None:
            message = f"Cannot move {entity} to '{target}'"
        else:
            message = f"Cannot move {entity} from '{current}' to '{target}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.current = current
        self.target = target


class DonationUnavailable(LifecycleError):
    code = "donation_unavailable"

    def __init__(self, donation_id: int, status: str) -> None:
        super().__init__(f"Donation {donation_id} is not available (status: {status})")
        self.donation_id = donation_id
        self.status = status


class ConflictError(LifecycleError):
    """The request and donation could not be updated together."""

    status_code = 409
    code = "conflict"

    def __init__(self, message: str, request_id: int, donation_id: int) -> None:
        super().__init__(message)
        self.request_id = request_id
        self.donation_id = donation_id


class PermissionDenied(LifecycleError):
    status_code = 403
    code = "permission_denied"
