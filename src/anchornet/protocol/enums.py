from enum import Enum


class ErrorCode(str, Enum):
    INVALID_PARAMETER = "invalid_parameter"
    EMPTY_BATCH = "empty_batch"
    UNKNOWN_ACCOUNT = "unknown_account"
    REJECTED = "rejected"
    DISPATCH_ERROR = "dispatch_error"
    OVERSIZED_BATCH = "oversized_batch"
    TRANSPORT_ERROR = "transport_error"
    TIMEOUT = "timeout"
    INTERNAL_ERROR = "internal_error"


class HashAlgorithm(str, Enum):
    TWOX = "twox"
    BLAKE2 = "blake2"


class NonceMode(str, Enum):
    AUTOMATIC = "automatic"
    EXPLICIT = "explicit"


class KeyType(str, Enum):
    SR25519 = "sr25519"
    ED25519 = "ed25519"


class TxStatus(str, Enum):
    """
    Raw extrinsic status values as reported by the ledger's pool watcher.
    """

    FUTURE = "future"
    READY = "ready"
    BROADCAST = "broadcast"
    IN_BLOCK = "in_block"
    RETRACTED = "retracted"
    FINALITY_TIMEOUT = "finality_timeout"
    FINALIZED = "finalized"
    USURPED = "usurped"
    DROPPED = "dropped"
    INVALID = "invalid"
    # Client-side: the watch ended without a known outcome (connection lost,
    # outcome not decodable)
    LOST = "lost"


class SubmissionState(str, Enum):
    """
    Submission lifecycle states.

    Legal transitions:
    - CREATED → BROADCAST | IN_BLOCK | FINALIZED | DISPATCH_ERROR | REJECTED
    - BROADCAST → IN_BLOCK | FINALIZED | DISPATCH_ERROR | REJECTED
    - IN_BLOCK → FINALIZED | DISPATCH_ERROR

    Terminal states: FINALIZED, DISPATCH_ERROR, REJECTED
    """

    CREATED = "created"
    BROADCAST = "broadcast"
    IN_BLOCK = "in_block"
    FINALIZED = "finalized"
    DISPATCH_ERROR = "dispatch_error"
    REJECTED = "rejected"

    @classmethod
    def is_terminal(cls, state: "SubmissionState") -> bool:
        return state in {cls.FINALIZED, cls.DISPATCH_ERROR, cls.REJECTED}

    @classmethod
    def is_failure(cls, state: "SubmissionState") -> bool:
        return state in {cls.DISPATCH_ERROR, cls.REJECTED}

    @classmethod
    def progress(cls, state: "SubmissionState") -> int:
        """Position on the success path, -1 for failure states."""
        order = [cls.CREATED, cls.BROADCAST, cls.IN_BLOCK, cls.FINALIZED]
        if state in order:
            return order.index(state)
        return -1

    @classmethod
    def validate_transition(cls, from_state: "SubmissionState", to_state: "SubmissionState") -> bool:
        legal_transitions = {
            cls.CREATED: {cls.BROADCAST, cls.IN_BLOCK, cls.FINALIZED, cls.DISPATCH_ERROR, cls.REJECTED},
            cls.BROADCAST: {cls.IN_BLOCK, cls.FINALIZED, cls.DISPATCH_ERROR, cls.REJECTED},
            cls.IN_BLOCK: {cls.FINALIZED, cls.DISPATCH_ERROR},
            cls.FINALIZED: set(),
            cls.DISPATCH_ERROR: set(),
            cls.REJECTED: set(),
        }
        return to_state in legal_transitions.get(from_state, set())
