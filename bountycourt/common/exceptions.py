from fastapi import HTTPException, status


class BountyCourtException(HTTPException):
    def __init__(self, detail: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR):
        super().__init__(status_code=status_code, detail=detail)


class NotFoundError(BountyCourtException):
    def __init__(self, resource: str, resource_id: str | None = None):
        detail = f"{resource} not found"
        if resource_id:
            detail = f"{resource} '{resource_id}' not found"
        super().__init__(detail=detail, status_code=status.HTTP_404_NOT_FOUND)


class ValidationError(BountyCourtException):
    """Malformed or under-length input. Never retried."""

    def __init__(self, detail: str):
        super().__init__(detail=detail, status_code=status.HTTP_400_BAD_REQUEST)


class AuthorizationError(BountyCourtException):
    def __init__(self, detail: str = "You are not a party to this dispute"):
        super().__init__(detail=detail, status_code=status.HTTP_403_FORBIDDEN)


class InvalidStateError(BountyCourtException):
    """The requested transition is not allowed from the dispute's current status."""

    def __init__(self, detail: str, current_status: str | None = None):
        self.current_status = current_status
        if current_status:
            detail = f"{detail} (current status: {current_status})"
        super().__init__(detail=detail, status_code=status.HTTP_409_CONFLICT)


class ConflictError(BountyCourtException):
    def __init__(self, detail: str):
        super().__init__(detail=detail, status_code=status.HTTP_409_CONFLICT)


class AllocationMismatchError(BountyCourtException):
    def __init__(self, detail: str, expected_total: int | None = None, actual_total: int | None = None):
        self.expected_total = expected_total
        self.actual_total = actual_total
        if expected_total is not None and actual_total is not None:
            detail = f"{detail} (expected {expected_total}, got {actual_total})"
        super().__init__(detail=detail, status_code=422)


class SettlementError(BountyCourtException):
    """The settlement rails rejected or failed a payout. Safe to retry."""

    def __init__(self, detail: str | None = None):
        msg = "Settlement failed"
        if detail:
            msg += f" - {detail}"
        super().__init__(detail=msg, status_code=status.HTTP_502_BAD_GATEWAY)
