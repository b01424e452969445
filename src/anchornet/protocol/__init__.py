from .enums import ErrorCode, HashAlgorithm, KeyType, NonceMode, SubmissionState, TxStatus
from .errors import (
    AnchorNetError,
    InvalidParameter,
    EmptyBatch,
    RegistryError,
    UnknownAccount,
    Rejected,
    DispatchError,
    OversizedBatch,
    TransportError,
    SubmissionTimeout,
)
from .models import (
    ContentHash,
    Operation,
    Batch,
    Submittable,
    RawDispatchError,
    DecodedError,
    LedgerEvent,
    RuntimeVersion,
)

__all__ = [
    "ErrorCode",
    "HashAlgorithm",
    "KeyType",
    "NonceMode",
    "SubmissionState",
    "TxStatus",
    "AnchorNetError",
    "InvalidParameter",
    "EmptyBatch",
    "RegistryError",
    "UnknownAccount",
    "Rejected",
    "DispatchError",
    "OversizedBatch",
    "TransportError",
    "SubmissionTimeout",
    "ContentHash",
    "Operation",
    "Batch",
    "Submittable",
    "RawDispatchError",
    "DecodedError",
    "LedgerEvent",
    "RuntimeVersion",
]
