"""
Content hashing.

Two families are supported:

- TWOX: the ledger's xxHash-based hasher. A width of N bits is the
  concatenation of N/64 xxHash64 digests of the payload, seeded 0, 1, 2, ...
  and each serialized little-endian. This matches what the node uses for
  storage prefixes and what its JS tooling exposes as xxhashAsHex.
- BLAKE2: BLAKE2b truncated to the requested width.

Both are pure functions of (payload, width).
"""

from __future__ import annotations

import hashlib
from typing import Union

import xxhash

from anchornet.protocol.enums import HashAlgorithm
from anchornet.protocol.errors import InvalidParameter
from anchornet.protocol.models import ContentHash

Payload = Union[bytes, bytearray, str]

MAX_BLAKE2_WIDTH = 512


def _as_bytes(payload: Payload) -> bytes:
    if isinstance(payload, str):
        return payload.encode("utf-8")
    return bytes(payload)


def _check_width(width: int) -> None:
    if not isinstance(width, int) or width <= 0 or width % 64:
        raise InvalidParameter(f"hash width must be a positive multiple of 64, got {width!r}")


def twox(payload: Payload, width: int = 256) -> bytes:
    _check_width(width)
    data = _as_bytes(payload)
    return b"".join(
        xxhash.xxh64(data, seed=seed).intdigest().to_bytes(8, "little")
        for seed in range(width // 64)
    )


def blake2(payload: Payload, width: int = 256) -> bytes:
    if not isinstance(width, int) or width <= 0 or width % 8 or width > MAX_BLAKE2_WIDTH:
        raise InvalidParameter(f"blake2 width must be a multiple of 8 up to 512, got {width!r}")
    return hashlib.blake2b(_as_bytes(payload), digest_size=width // 8).digest()


def twox_128(payload: Payload) -> bytes:
    return twox(payload, 128)


def blake2_128(payload: Payload) -> bytes:
    return blake2(payload, 128)


def blake2_256(payload: Payload) -> bytes:
    return blake2(payload, 256)


def content_hash(
    payload: Payload,
    width: int = 256,
    algorithm: HashAlgorithm = HashAlgorithm.TWOX,
) -> ContentHash:
    """
    Derive the content identifier of a payload.

    Same payload + width + algorithm always yields the same ContentHash.
    Raises InvalidParameter for widths that are not positive multiples of 64.
    """
    _check_width(width)
    algorithm = HashAlgorithm(algorithm)
    if algorithm is HashAlgorithm.TWOX:
        return ContentHash(twox(payload, width))
    return ContentHash(blake2(payload, width))
