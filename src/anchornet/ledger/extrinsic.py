"""
Signed extrinsic assembly (transaction format version 4).

    extrinsic = compact(len) || 0x84 || address || signature || extra || call
    extra     = era || compact(nonce) || compact(tip)
    payload   = call || extra || spec_version || tx_version || genesis || checkpoint

Payloads longer than 256 bytes are signed by their BLAKE2-256 digest. The era
is always immortal, so the checkpoint block is the genesis block.
"""

from __future__ import annotations

from dataclasses import dataclass

from anchornet.codec.scale import encode_bytes, encode_compact, encode_u32
from anchornet.crypto.hasher import blake2_256
from anchornet.crypto.keys import Keypair
from anchornet.protocol.enums import KeyType
from anchornet.protocol.models import RuntimeVersion

SIGNED_V4 = 0x84
IMMORTAL_ERA = b"\x00"
# MultiSignature variant per key type
SIGNATURE_TYPES = {KeyType.ED25519: b"\x00", KeyType.SR25519: b"\x01"}
MULTIADDRESS_ID = b"\x00"
MAX_UNHASHED_PAYLOAD = 256


@dataclass(frozen=True)
class ChainContext:
    genesis_hash: bytes
    runtime: RuntimeVersion
    address_type: str = "MultiAddress"


def signing_payload(call: bytes, nonce: int, ctx: ChainContext, tip: int = 0) -> bytes:
    payload = (
        call
        + IMMORTAL_ERA
        + encode_compact(nonce)
        + encode_compact(tip)
        + encode_u32(ctx.runtime.spec_version)
        + encode_u32(ctx.runtime.transaction_version)
        + ctx.genesis_hash
        + ctx.genesis_hash
    )
    if len(payload) > MAX_UNHASHED_PAYLOAD:
        return blake2_256(payload)
    return payload


def build_signed_extrinsic(
    call: bytes,
    signer: Keypair,
    nonce: int,
    ctx: ChainContext,
    tip: int = 0,
) -> bytes:
    signature = signer.sign(signing_payload(call, nonce, ctx, tip))

    if ctx.address_type == "MultiAddress":
        address = MULTIADDRESS_ID + signer.public_key
    else:
        address = signer.public_key

    body = (
        bytes([SIGNED_V4])
        + address
        + SIGNATURE_TYPES[signer.key_type]
        + signature
        + IMMORTAL_ERA
        + encode_compact(nonce)
        + encode_compact(tip)
        + call
    )
    return encode_bytes(body)


def extrinsic_hash(extrinsic: bytes) -> str:
    return "0x" + blake2_256(extrinsic).hex()
