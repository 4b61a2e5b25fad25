from typing import Dict, Optional

from fastapi import HTTPException, status


class ServiceError(Exception):
    """Base exception for service layer errors."""

    code = "SERVICE_ERROR"

    def __init__(self, message: str, status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code

    def as_http_exception(self, headers: Optional[Dict[str, str]] = None) -> HTTPException:
        """HTTPException for routers. The stable code travels in the X-Error-Code header."""
        return HTTPException(
            status_code=self.status_code,
            detail=self.message,
            headers={"X-Error-Code": self.code, **(headers or {})},
        )


class UnauthenticatedError(ServiceError):
    """Missing or invalid caller identity."""

    code = "UNAUTHENTICATED"

    def __init__(self, message: str = "Could not validate credentials") -> None:
        super().__init__(message, status.HTTP_401_UNAUTHORIZED)


class PlanNotFoundError(ServiceError):
    code = "PLAN_NOT_FOUND"

    def __init__(self, message: str = "Subscription plan not found") -> None:
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class PlanNotPurchasableError(ServiceError):
    """The plan has no processor-side price for the requested billing cycle."""

    code = "PLAN_NOT_PURCHASABLE"

    def __init__(self, message: str = "This plan has no payment price configured") -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class ProcessorError(ServiceError):
    """A call to the payment processor failed. The message is the processor's own."""

    code = "PROCESSOR_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_502_BAD_GATEWAY)


class PayloadValidationError(ServiceError):
    """Malformed request body."""

    code = "VALIDATION_ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class NotConfiguredError(ServiceError):
    """A platform credential required for the call is missing."""

    code = "NOT_CONFIGURED"

    def __init__(self, message: str = "Payment processor is not configured") -> None:
        super().__init__(message, status.HTTP_400_BAD_REQUEST)
