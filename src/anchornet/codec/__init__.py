from .events import EventReader, EventRecord, ExtrinsicOutcome, find_outcome
from .scale import (
    encode_compact,
    decode_compact,
    encode_u32,
    encode_u64,
    decode_u32,
    decode_u64,
    encode_bytes,
    encode_hash,
    encode_call,
)

__all__ = [
    "encode_compact",
    "decode_compact",
    "encode_u32",
    "encode_u64",
    "decode_u32",
    "decode_u64",
    "encode_bytes",
    "encode_hash",
    "encode_call",
    "EventReader",
    "EventRecord",
    "ExtrinsicOutcome",
    "find_outcome",
]
