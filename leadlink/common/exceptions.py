from fastapi import HTTPException, status


class LeadLinkException(HTTPException):
    error_code = "INTERNAL_ERROR"

    def __init__(self, detail: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR):
        super().__init__(status_code=status_code, detail=detail)


class NotFoundError(LeadLinkException):
    error_code = "NOT_FOUND"

    def __init__(self, resource: str, resource_id: str | None = None):
        detail = f"{resource} not found"
        if resource_id:
            detail = f"{resource} '{resource_id}' not found"
        super().__init__(detail=detail, status_code=status.HTTP_404_NOT_FOUND)


class NoVendorsFoundError(LeadLinkException):
    error_code = "NO_VENDORS_FOUND"

    def __init__(self, radius_km: float):
        super().__init__(
            detail=f"No vendors found within {radius_km:g}km radius matching your search",
            status_code=status.HTTP_404_NOT_FOUND,
        )


class NotAuthenticatedError(LeadLinkException):
    error_code = "AUTHENTICATION_REQUIRED"

    def __init__(self, detail: str = "Not authenticated"):
        super().__init__(detail=detail, status_code=status.HTTP_401_UNAUTHORIZED)


class PermissionDeniedError(LeadLinkException):
    error_code = "FORBIDDEN"

    def __init__(self, detail: str = "You do not have permission to perform this action"):
        super().__init__(detail=detail, status_code=status.HTTP_403_FORBIDDEN)


class BadRequestError(LeadLinkException):
    error_code = "BAD_REQUEST"

    def __init__(self, detail: str):
        super().__init__(detail=detail, status_code=status.HTTP_400_BAD_REQUEST)


class ConflictError(LeadLinkException):
    error_code = "CONFLICT"

    def __init__(self, detail: str):
        super().__init__(detail=detail, status_code=status.HTTP_409_CONFLICT)


class ConflictingStateError(ConflictError):
    """A conditional transition found the record in a different state."""

    error_code = "CONFLICTING_STATE"

    def __init__(self, resource: str, expected: str, current: str | None):
        self.expected = expected
        self.current = current
        found = current if current is not None else "absent"
        super().__init__(f"{resource} is '{found}', expected '{expected}'")


class AlreadyAcceptedError(ConflictingStateError):
    error_code = "ALREADY_ACCEPTED"

    def __init__(self):
        ConflictError.__init__(self, "You have already accepted this enquiry")
        self.expected = "pending"
        self.current = "accepted"


class PaymentVerificationFailedError(LeadLinkException):
    error_code = "PAYMENT_VERIFICATION_FAILED"

    def __init__(self, detail: str = "Payment verification failed"):
        super().__init__(detail=detail, status_code=status.HTTP_400_BAD_REQUEST)


class ExternalServiceError(LeadLinkException):
    error_code = "SERVICE_UNAVAILABLE"

    def __init__(self, service: str, detail: str | None = None):
        msg = f"External service error: {service}"
        if detail:
            msg += f" - {detail}"
        super().__init__(detail=msg, status_code=status.HTTP_502_BAD_GATEWAY)


class UpstreamGatewayError(ExternalServiceError):
    error_code = "UPSTREAM_GATEWAY_ERROR"

    def __init__(self, detail: str = "Failed to create payment order"):
        super().__init__("payment gateway", detail)
        self.status_code = status.HTTP_500_INTERNAL_SERVER_ERROR


class NotInitializedError(RuntimeError):
    """Raised when the notification transport is used before startup attached it."""
