from .hasher import content_hash, twox, blake2, twox_128, blake2_128, blake2_256
from .keys import Keypair, ss58_encode, ss58_decode, DEV_SEED, DEFAULT_KEY_TYPE

__all__ = [
    "content_hash",
    "twox",
    "blake2",
    "twox_128",
    "blake2_128",
    "blake2_256",
    "Keypair",
    "ss58_encode",
    "ss58_decode",
    "DEV_SEED",
    "DEFAULT_KEY_TYPE",
]
