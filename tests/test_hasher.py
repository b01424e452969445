"""
Tests for content hashing.
"""

import hashlib

import pytest

from anchornet.crypto.hasher import blake2, blake2_256, content_hash, twox, twox_128
from anchornet.protocol.enums import HashAlgorithm
from anchornet.protocol.errors import InvalidParameter
from anchornet.protocol.models import ContentHash

from conftest import FIRST_LINK_AT_1600000000000, ROOT_HASH_AT_1600000000000


class TestTwox:
    def test_empty_payload_matches_xxh64_seed_zero(self):
        """xxh64("") with seed 0 is 0xef46db3751d8e999, serialized little-endian."""
        assert twox(b"", 64) == bytes.fromhex("99e9d85137db46ef")

    def test_storage_prefixes(self):
        """Known 128-bit prefixes used for node storage keys."""
        assert twox_128("System").hex() == "26aa394eea5630e07c48ae0c9558cef7"
        assert twox_128("Account").hex() == "b99d880ec681799c0cf30e8886371da9"
        assert twox_128("Events").hex() == "80d41e5e16056765bc8461851072c9d7"

    def test_wider_output_extends_narrower(self):
        """Each extra 64 bits is one more seeded digest appended."""
        assert twox("payload", 256)[:16] == twox("payload", 128)

    def test_str_and_bytes_agree(self):
        assert twox("{ name, company }", 256) == twox(b"{ name, company }", 256)


class TestContentHash:
    def test_deterministic(self):
        a = content_hash("{ name, company }1600000000000")
        b = content_hash("{ name, company }1600000000000")
        assert a == b
        assert a.width == 256

    def test_known_root_hash(self):
        assert content_hash("{ name, company }1600000000000").hex == ROOT_HASH_AT_1600000000000

    def test_known_link_hash(self):
        assert content_hash("https://dhiway.com/1600000000000/0").hex == FIRST_LINK_AT_1600000000000

    def test_distinct_payloads(self):
        assert content_hash("https://dhiway.com/1/0") != content_hash("https://dhiway.com/1/1")

    def test_width_controls_digest_length(self):
        assert len(content_hash("x", 128).digest) == 16
        assert len(content_hash("x", 512).digest) == 64

    @pytest.mark.parametrize("width", [0, -64, 100, 255])
    def test_invalid_width(self, width):
        with pytest.raises(InvalidParameter):
            content_hash("x", width)

    def test_blake2_family(self):
        expected = hashlib.blake2b(b"abc", digest_size=32).digest()
        assert content_hash("abc", 256, HashAlgorithm.BLAKE2).digest == expected
        assert blake2_256("abc") == expected

    def test_algorithm_accepts_string_value(self):
        assert content_hash("abc", 256, "blake2") == content_hash("abc", 256, HashAlgorithm.BLAKE2)

    def test_families_differ(self):
        assert content_hash("abc", 256, HashAlgorithm.TWOX) != content_hash("abc", 256, HashAlgorithm.BLAKE2)

    def test_blake2_width_limit(self):
        with pytest.raises(InvalidParameter):
            blake2("abc", 1024)


class TestContentHashModel:
    def test_hex_rendering(self):
        h = ContentHash(bytes(range(32)))
        assert h.hex == "0x" + bytes(range(32)).hex()
        assert str(h) == h.hex

    def test_from_hex_round_trip(self):
        h = content_hash("abc")
        assert ContentHash.from_hex(h.hex) == h
        assert ContentHash.from_hex(h.hex[2:]) == h

    def test_rejects_non_multiple_of_64(self):
        with pytest.raises(InvalidParameter):
            ContentHash(b"\x00" * 7)

    def test_rejects_bad_hex(self):
        with pytest.raises(InvalidParameter):
            ContentHash.from_hex("0xzz")
