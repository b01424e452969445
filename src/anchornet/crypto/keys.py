"""
Signing identities.

Accounts sign with sr25519 (py-sr25519-bindings, the default) or Ed25519
(cryptography). Addresses are SS58 encoded.

Development identities ("//Alice", "//Eve", ...) start from the mini-secret
of the development phrase and walk each junction of the path:

- sr25519: hard ("//x") and soft ("/x") junctions, derived by the
  schnorrkel HDKD the node's own keyring uses. "//Eve" here is the same
  account a development chain endows.
- ed25519: hard junctions only, seed' = blake2_256(SCALE("Ed25519HDKD") ||
  seed || chain_code).
"""

from __future__ import annotations

import os
import re
from typing import Any, List, Optional, Tuple

import base58
import sr25519
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import (
    Ed25519PrivateKey,
    Ed25519PublicKey,
)
from cryptography.exceptions import InvalidSignature

from anchornet.crypto.hasher import blake2, blake2_256
from anchornet.codec.scale import encode_bytes, encode_u64
from anchornet.protocol.enums import KeyType
from anchornet.protocol.errors import InvalidParameter

# Mini-secret of the development phrase
# "bottom drive obey lake curtain smoke basket hold race lonely fit walk".
DEV_SEED = bytes.fromhex("fac7959dbfe72f052e5a0c3c8d6530f202b02fd8f9f5ca3580ec8deb7797479e")

DEFAULT_SS58_FORMAT = 42
DEFAULT_KEY_TYPE = KeyType.SR25519

_JUNCTION_RE = re.compile(r"/(/?)([^/]+)")
_HDKD_PREFIX = encode_bytes(b"Ed25519HDKD")
_SS58_PREFIX = b"SS58PRE"

Junction = Tuple[str, bool]


# ----------------------------------------------------------------------
# SS58
# ----------------------------------------------------------------------

def _ss58_prefix_bytes(ss58_format: int) -> bytes:
    if 0 <= ss58_format < 64:
        return bytes([ss58_format])
    if 64 <= ss58_format < 16384:
        first = ((ss58_format & 0b0000_0000_1111_1100) >> 2) | 0b0100_0000
        second = (ss58_format >> 8) | ((ss58_format & 0b0000_0000_0000_0011) << 6)
        return bytes([first, second])
    raise InvalidParameter(f"ss58 format out of range: {ss58_format}")


def ss58_encode(public_key: bytes, ss58_format: int = DEFAULT_SS58_FORMAT) -> str:
    if len(public_key) != 32:
        raise InvalidParameter(f"expected a 32-byte public key, got {len(public_key)} bytes")
    body = _ss58_prefix_bytes(ss58_format) + public_key
    checksum = blake2(_SS58_PREFIX + body, 512)[:2]
    return base58.b58encode(body + checksum).decode("ascii")


def ss58_decode(address: str) -> bytes:
    """Return the 32-byte public key behind an SS58 address."""
    try:
        raw = base58.b58decode(address)
    except ValueError as e:
        raise InvalidParameter(f"invalid ss58 address {address!r}: {e}") from e

    if len(raw) not in (35, 36):
        raise InvalidParameter(f"invalid ss58 address length for {address!r}")

    prefix_len = 1 if raw[0] < 64 else 2
    body, checksum = raw[:-2], raw[-2:]
    if blake2(_SS58_PREFIX + body, 512)[:2] != checksum:
        raise InvalidParameter(f"invalid ss58 checksum for {address!r}")
    return body[prefix_len:]


# ----------------------------------------------------------------------
# Derivation
# ----------------------------------------------------------------------

def chain_code(junction: str) -> bytes:
    if junction.isdigit():
        encoded = encode_u64(int(junction))
    else:
        encoded = encode_bytes(junction.encode("utf-8"))

    if len(encoded) > 32:
        return blake2_256(encoded)
    return encoded.ljust(32, b"\x00")


def derive_hard(seed: bytes, junction: str) -> bytes:
    """Ed25519 hard derivation of a 32-byte seed."""
    return blake2_256(_HDKD_PREFIX + seed + chain_code(junction))


def parse_junctions(path: str) -> List[Junction]:
    """Split "//a/b//c" into [("a", True), ("b", False), ("c", True)]."""
    junctions: List[Junction] = []
    pos = 0
    for match in _JUNCTION_RE.finditer(path):
        if match.start() != pos:
            break
        junctions.append((match.group(2), bool(match.group(1))))
        pos = match.end()
    if pos != len(path):
        raise InvalidParameter(f"invalid derivation path {path!r}")
    return junctions


def _split_uri(uri: str) -> Tuple[bytes, str]:
    uri = uri.strip()
    if uri.startswith("0x"):
        hex_part, _, rest = uri[2:].partition("/")
        try:
            seed = bytes.fromhex(hex_part)
        except ValueError as e:
            raise InvalidParameter(f"invalid hex seed in secret uri: {e}") from e
        return seed, "/" + rest if rest else ""
    if uri.startswith("/"):
        return DEV_SEED, uri
    raise InvalidParameter(
        "secret uri must be a //junction path or a 0x-prefixed seed; mnemonic phrases are not supported"
    )


def _check_seed(seed: bytes) -> None:
    if len(seed) != 32:
        raise InvalidParameter(f"seed must be 32 bytes, got {len(seed)}")


# ----------------------------------------------------------------------
# Keypair
# ----------------------------------------------------------------------

class Keypair:
    """
    sr25519 or Ed25519 signing identity.

    Usage:
        # Well-known development identity (sr25519, as endowed by dev chains)
        pair = Keypair.from_uri("//Eve")

        # Ed25519 variant of the same path
        pair = Keypair.from_uri("//Eve", key_type=KeyType.ED25519)

        # Raw 32-byte seed (hex), optionally with junctions
        pair = Keypair.from_uri("0x<64 hex chars>//stash")

        # Ed25519 key from a PEM file
        pair = Keypair.from_pem_file("/path/to/key.pem")
    """

    def __init__(
        self,
        key_type: KeyType,
        public_key: bytes,
        secret: Any,
        ss58_format: int = DEFAULT_SS58_FORMAT,
    ):
        self._key_type = key_type
        self._public_key = public_key
        # Ed25519PrivateKey for ed25519, 64-byte secret for sr25519
        self._secret = secret
        self._ss58_format = ss58_format
        self._address = ss58_encode(public_key, ss58_format)

    @property
    def key_type(self) -> KeyType:
        return self._key_type

    @property
    def public_key(self) -> bytes:
        """Raw 32-byte public key, which is also the on-chain AccountId."""
        return self._public_key

    @property
    def address(self) -> str:
        return self._address

    @property
    def ss58_format(self) -> int:
        return self._ss58_format

    def sign(self, data: bytes) -> bytes:
        """Returns a 64-byte signature. sr25519 signatures are randomized."""
        if self._key_type is KeyType.SR25519:
            return bytes(sr25519.sign((self._public_key, self._secret), data))
        return self._secret.sign(data)

    def verify(self, data: bytes, signature: bytes) -> bool:
        return verify(self._key_type, self._public_key, data, signature)

    def __repr__(self) -> str:
        return f"Keypair(address={self._address!r}, type={self._key_type.value})"

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    @classmethod
    def generate(
        cls,
        ss58_format: int = DEFAULT_SS58_FORMAT,
        key_type: KeyType = KeyType.ED25519,
    ) -> "Keypair":
        """Generate a throwaway key pair. Use only for testing."""
        if key_type is KeyType.ED25519:
            return cls._ed25519(Ed25519PrivateKey.generate(), ss58_format)
        return cls.from_seed(os.urandom(32), ss58_format, key_type)

    @classmethod
    def from_seed(
        cls,
        seed: bytes,
        ss58_format: int = DEFAULT_SS58_FORMAT,
        key_type: KeyType = DEFAULT_KEY_TYPE,
    ) -> "Keypair":
        """Create a key pair from a raw 32-byte seed (mini-secret for sr25519)."""
        _check_seed(seed)
        if key_type is KeyType.ED25519:
            return cls._ed25519(Ed25519PrivateKey.from_private_bytes(seed), ss58_format)
        public_key, secret = sr25519.pair_from_seed(seed)
        return cls(KeyType.SR25519, bytes(public_key), bytes(secret), ss58_format)

    @classmethod
    def from_uri(
        cls,
        uri: str,
        ss58_format: int = DEFAULT_SS58_FORMAT,
        key_type: KeyType = DEFAULT_KEY_TYPE,
    ) -> "Keypair":
        """
        Create a key pair from a secret URI.

        Accepted forms:
            //Alice                  dev phrase seed + junctions
            0x<hex seed>             raw seed
            0x<hex seed>//a/b        raw seed + junctions
        """
        seed, path = _split_uri(uri)
        junctions = parse_junctions(path)
        _check_seed(seed)

        if key_type is KeyType.ED25519:
            for name, hard in junctions:
                if not hard:
                    raise InvalidParameter(f"soft derivation is not supported for ed25519: /{name}")
                seed = derive_hard(seed, name)
            return cls.from_seed(seed, ss58_format, KeyType.ED25519)

        public_key, secret = sr25519.pair_from_seed(seed)
        for name, hard in junctions:
            derive = sr25519.hard_derive_keypair if hard else sr25519.derive_keypair
            _, public_key, secret = derive((chain_code(name), public_key, secret), b"")
        return cls(KeyType.SR25519, bytes(public_key), bytes(secret), ss58_format)

    @classmethod
    def from_pem_file(cls, path: str, password: Optional[bytes] = None,
                      ss58_format: int = DEFAULT_SS58_FORMAT) -> "Keypair":
        """Load an Ed25519 key pair from a PEM-encoded private key file."""
        with open(path, "rb") as f:
            private_key = serialization.load_pem_private_key(
                f.read(),
                password=password,
            )
        if not isinstance(private_key, Ed25519PrivateKey):
            raise TypeError(f"Expected Ed25519 private key, got {type(private_key)}")
        return cls._ed25519(private_key, ss58_format)

    @classmethod
    def _ed25519(cls, private_key: Ed25519PrivateKey, ss58_format: int) -> "Keypair":
        public_key = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PublicFormat.Raw
        )
        return cls(KeyType.ED25519, public_key, private_key, ss58_format)

    def export_public_pem(self) -> bytes:
        if self._key_type is not KeyType.ED25519:
            raise InvalidParameter("only ed25519 keys have a PEM form")
        return Ed25519PublicKey.from_public_bytes(self._public_key).public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo
        )


def verify(key_type: KeyType, public_key: bytes, data: bytes, signature: bytes) -> bool:
    if key_type is KeyType.SR25519:
        return bool(sr25519.verify(signature, data, public_key))
    try:
        Ed25519PublicKey.from_public_bytes(public_key).verify(signature, data)
        return True
    except InvalidSignature:
        return False
