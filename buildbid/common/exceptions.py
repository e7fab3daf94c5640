from fastapi import HTTPException, status


class BuildBidException(HTTPException):
    code = "INTERNAL_SERVER_ERROR"

    def __init__(self, detail: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR):
        super().__init__(status_code=status_code, detail=detail)


class NotFoundError(BuildBidException):
    code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: str | None = None):
        detail = f"{resource} not found"
        if resource_id:
            detail = f"{resource} '{resource_id}' not found"
        super().__init__(detail=detail, status_code=status.HTTP_404_NOT_FOUND)


class AuthenticationError(BuildBidException):
    code = "UNAUTHORIZED"

    def __init__(self, detail: str = "Not authenticated"):
        super().__init__(detail=detail, status_code=status.HTTP_401_UNAUTHORIZED)


class ForbiddenError(BuildBidException):
    code = "FORBIDDEN"

    def __init__(self, detail: str = "Access denied"):
        super().__init__(detail=detail, status_code=status.HTTP_403_FORBIDDEN)


class ValidationError(BuildBidException):
    code = "BAD_REQUEST"

    def __init__(self, detail: str):
        super().__init__(detail=detail, status_code=status.HTTP_400_BAD_REQUEST)


class InvalidStateError(BuildBidException):
    code = "BAD_REQUEST"

    def __init__(self, detail: str):
        super().__init__(detail=detail, status_code=status.HTTP_400_BAD_REQUEST)


class ConflictError(BuildBidException):
    code = "CONFLICT"

    def __init__(self, detail: str):
        super().__init__(detail=detail, status_code=status.HTTP_409_CONFLICT)


class PaymentRequiredError(BuildBidException):
    code = "PAYMENT_REQUIRED"

    def __init__(self, detail: str = "A one-time fee is required before this action"):
        super().__init__(detail=detail, status_code=status.HTTP_402_PAYMENT_REQUIRED)


class UpstreamError(BuildBidException):
    def __init__(self, service: str, detail: str | None = None):
        msg = f"External service error: {service}"
        if detail:
            msg += f" - {detail}"
        self.service = service
        super().__init__(detail=msg, status_code=status.HTTP_502_BAD_GATEWAY)
