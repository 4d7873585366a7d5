"""
HaemoFlow exceptions

Error code convention:
- HF4xxx: client errors (bad input, missing records, lost races)
- HF5xxx: server-side errors (external dependencies)
"""

from typing import Any, Dict, Optional


class ErrorCode:
    """Error codes"""
    # 4xx client errors
    INVALID_INPUT = "HF4001"
    INVALID_TOKEN = "HF4002"
    TOKEN_EXPIRED = "HF4003"
    NOT_FOUND = "HF4004"
    ALREADY_RESERVED = "HF4009"
    COLD_CHAIN_VIOLATION = "HF4022"

    # 5xx server errors
    REASONING_FAILED = "HF5001"


class HaemoFlowError(Exception):
    """
    Base exception for the fulfillment workflow

    All domain exceptions inherit from this class.
    """

    def __init__(
        self,
        status_code: int,
        error_code: str,
        message: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_code = error_code
        self.message = message
        self.details = details or {}


class ValidationError(HaemoFlowError):
    """Missing or malformed input"""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            status_code=400,
            error_code=ErrorCode.INVALID_INPUT,
            message=message,
            details=details,
        )


class InvalidTokenError(HaemoFlowError):
    """Response token cannot be parsed"""

    def __init__(self, message: str = "Invalid token format") -> None:
        super().__init__(
            status_code=400,
            error_code=ErrorCode.INVALID_TOKEN,
            message=message,
        )


class TokenExpiredError(HaemoFlowError):
    """Response token is older than its validity window"""

    def __init__(self, age_ms: int) -> None:
        super().__init__(
            status_code=400,
            error_code=ErrorCode.TOKEN_EXPIRED,
            message="Token has expired. This alert is no longer active.",
            details={"age_ms": age_ms},
        )


class NotFoundError(HaemoFlowError):
    """Record does not exist"""

    def __init__(self, entity: str, key: str, message: Optional[str] = None) -> None:
        super().__init__(
            status_code=404,
            error_code=ErrorCode.NOT_FOUND,
            message=message or f"{entity} not found: {key}",
            details={"entity": entity, "key": key},
        )


class AlreadyReservedError(HaemoFlowError):
    """Another request won the reservation of an inventory unit"""

    def __init__(self, inventory_id: str) -> None:
        super().__init__(
            status_code=409,
            error_code=ErrorCode.ALREADY_RESERVED,
            message=f"Inventory unit already reserved: {inventory_id}",
            details={"inventory_id": inventory_id},
        )


class ColdChainViolationError(HaemoFlowError):
    """Transport plan exceeds the cold-chain transit limit"""

    def __init__(self, transport_id: str, eta_minutes: int, limit_minutes: int) -> None:
        super().__init__(
            status_code=422,
            error_code=ErrorCode.COLD_CHAIN_VIOLATION,
            message=(
                f"Transport {transport_id} would take {eta_minutes} minutes, "
                f"exceeding the {limit_minutes} minute cold-chain limit. Manual coordination required."
            ),
            details={
                "transport_id": transport_id,
                "eta_minutes": eta_minutes,
                "limit_minutes": limit_minutes,
            },
        )


class ReasoningError(HaemoFlowError):
    """
    External reasoning call failed or returned something unusable.

    Carried inside a ReasoningOutcome; call sites never raise it.
    """

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(
            status_code=502,
            error_code=ErrorCode.REASONING_FAILED,
            message=message,
            details=details,
        )
