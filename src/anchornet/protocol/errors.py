from typing import Optional, TYPE_CHECKING

from .enums import ErrorCode

if TYPE_CHECKING:
    from .models import DecodedError, RawDispatchError


class AnchorNetError(Exception):
    def __init__(self, message: str, code: Optional[ErrorCode] = None):
        super().__init__(message)
        self.code = code or ErrorCode.INTERNAL_ERROR


class InvalidParameter(AnchorNetError):
    """Raised on caller bugs: bad hash width, bad nonce, unknown call target."""

    def __init__(self, message: str, code: Optional[ErrorCode] = None):
        super().__init__(message, code or ErrorCode.INVALID_PARAMETER)


class EmptyBatch(InvalidParameter):
    def __init__(self, message: str = "cannot aggregate an empty sequence of operations"):
        super().__init__(message, ErrorCode.EMPTY_BATCH)


class RegistryError(InvalidParameter):
    """Raised when a type/metadata registry artifact is malformed."""


class UnknownAccount(AnchorNetError):
    def __init__(self, address: str):
        super().__init__(f"account {address} is unknown to the ledger", ErrorCode.UNKNOWN_ACCOUNT)
        self.address = address


class Rejected(AnchorNetError):
    """The ledger refused to admit (or dropped) a submission."""

    def __init__(self, reason: str):
        super().__init__(f"submission rejected: {reason}", ErrorCode.REJECTED)
        self.reason = reason


class DispatchError(AnchorNetError):
    """The submission was included but its effect failed at execution time."""

    def __init__(self, raw: "RawDispatchError", decoded: Optional["DecodedError"] = None):
        detail = str(decoded) if decoded is not None else str(raw)
        super().__init__(f"dispatch error: {detail}", ErrorCode.DISPATCH_ERROR)
        self.raw = raw
        self.decoded = decoded


class OversizedBatch(AnchorNetError):
    def __init__(self, size: int, limit: Optional[int] = None, detail: str = ""):
        message = f"batch of {size} operations exceeds the ledger's limits"
        if limit is not None:
            message += f" (limit {limit})"
        if detail:
            message += f": {detail}"
        super().__init__(message, ErrorCode.OVERSIZED_BATCH)
        self.size = size
        self.limit = limit


class TransportError(AnchorNetError):
    def __init__(self, message: str):
        super().__init__(message, ErrorCode.TRANSPORT_ERROR)


class SubmissionTimeout(AnchorNetError):
    def __init__(self, label: str, target: str, timeout: float):
        super().__init__(
            f"submission {label} did not reach {target} within {timeout:.1f}s",
            ErrorCode.TIMEOUT,
        )
        self.timeout = timeout
