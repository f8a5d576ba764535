"""
Exceptions for the ZKP2P SDK.

Every error the SDK raises derives from ``Zkp2pError`` and carries an
``ErrorCode`` so callers (and the intent flow) can branch on the kind of
failure instead of on exception classes.
"""
from enum import Enum
from typing import Any, Iterable, List, Optional


class ErrorCode(str, Enum):
    """Top-level error kinds."""
    VALIDATION = "VALIDATION"
    NETWORK = "NETWORK"
    API = "API"
    CONTRACT = "CONTRACT"
    ENCODING = "ENCODING"
    PARSE = "PARSE"
    UNKNOWN_PROCESSOR = "UNKNOWN_PROCESSOR"
    INVALID_PROOF_COUNT = "INVALID_PROOF_COUNT"
    TRACKER_STATE = "TRACKER_STATE"


class NetworkReason(str, Enum):
    TIMEOUT = "TIMEOUT"
    CONNECTION = "CONNECTION"
    ABORTED = "ABORTED"


class APIReason(str, Enum):
    HTTP_STATUS = "HTTP_STATUS"
    MALFORMED_RESPONSE = "MALFORMED_RESPONSE"
    UNSUCCESSFUL = "UNSUCCESSFUL"


class EncodingReason(str, Enum):
    NOT_BYTES32 = "NOT_BYTES32"
    TOO_LONG = "TOO_LONG"
    OUT_OF_RANGE = "OUT_OF_RANGE"
    INVALID_HEX = "INVALID_HEX"
    INVALID_ADDRESS = "INVALID_ADDRESS"
    ABI_ENCODING = "ABI_ENCODING"


class ParseReason(str, Enum):
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_NUMBER = "INVALID_NUMBER"
    INVALID_SHAPE = "INVALID_SHAPE"


class Zkp2pError(Exception):
    """Base exception for the SDK."""

    code: ErrorCode = ErrorCode.VALIDATION

    def __init__(
        self,
        message: str,
        code: Optional[ErrorCode] = None,
        details: Any = None,
        field: Optional[str] = None,
    ):
        super().__init__(message)
        if code is not None:
            self.code = code
        self.details = details
        self.field = field


class ValidationError(Zkp2pError):
    """Raised when caller input is invalid."""

    code = ErrorCode.VALIDATION

    def __init__(self, message: str, field: Optional[str] = None, details: Any = None):
        super().__init__(message, details=details, field=field)


class NetworkError(Zkp2pError):
    """Raised on transport failures: timeouts, refused connections, aborts."""

    code = ErrorCode.NETWORK

    def __init__(self, message: str, reason: NetworkReason = NetworkReason.CONNECTION, details: Any = None):
        self.reason = reason
        super().__init__(message, details=details)


class APIError(Zkp2pError):
    """Raised when an HTTP API answers with a non-2xx status or a malformed body."""

    code = ErrorCode.API

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        body: Optional[str] = None,
        reason: APIReason = APIReason.HTTP_STATUS,
        details: Any = None,
    ):
        self.status = status
        self.body = body
        self.reason = reason
        super().__init__(message, details=details)


class ContractError(Zkp2pError):
    """Raised on a revert, a failed simulation or a reverted receipt."""

    code = ErrorCode.CONTRACT

    def __init__(self, message: str, revert_reason: Optional[str] = None, tx_hash: Optional[str] = None, details: Any = None):
        self.revert_reason = revert_reason
        self.tx_hash = tx_hash
        super().__init__(message, details=details)


class EncodingError(Zkp2pError):
    """Raised when a value violates a byte-level encoding rule."""

    code = ErrorCode.ENCODING

    def __init__(self, message: str, reason: EncodingReason, field: Optional[str] = None):
        self.reason = reason
        super().__init__(message, field=field)


class ParseError(Zkp2pError):
    """Raised when an on-chain view payload is malformed."""

    code = ErrorCode.PARSE

    def __init__(self, message: str, reason: ParseReason = ParseReason.MISSING_FIELD, field: Optional[str] = None):
        self.reason = reason
        super().__init__(message, field=field)


class UnknownProcessorError(Zkp2pError):
    """Raised when an authoritative payment-method catalog has no entry for a name."""

    code = ErrorCode.UNKNOWN_PROCESSOR

    def __init__(self, processor_name: str, available: Iterable[str]):
        self.processor_name = processor_name
        self.available: List[str] = sorted(available)
        if self.available:
            message = f"Unknown processorName: {processor_name}. Available: {', '.join(self.available)}"
        else:
            message = (
                f"Unknown processorName: {processor_name}. "
                "The payment methods catalog is empty or unavailable."
            )
        super().__init__(message, field="processorName")


class InvalidProofCountError(Zkp2pError):
    """Raised when a proof bundle holds anything but one or two proofs."""

    code = ErrorCode.INVALID_PROOF_COUNT

    def __init__(self, count: int):
        self.count = count
        super().__init__(f"Expected 1 or 2 proofs, got {count}", field="proofs")


class TrackerStateError(Zkp2pError):
    """Raised on an illegal transaction tracker transition."""

    code = ErrorCode.TRACKER_STATE


def is_retryable(error: BaseException) -> bool:
    """Whether a failed read-only network step may be attempted again."""
    if isinstance(error, NetworkError):
        return True
    if isinstance(error, APIError):
        if error.reason == APIReason.MALFORMED_RESPONSE:
            return False
        return error.status is not None and (error.status == 429 or error.status >= 500)
    return False
