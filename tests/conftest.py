"""
Shared fixtures for the AnchorNet test suite.
"""

import asyncio
import logging

import pytest

from anchornet.core.settings import get_settings
from anchornet.crypto.keys import Keypair
from anchornet.ledger.memory import InMemoryLedger

LEDGER_TIMESTAMP = 1_600_000_000_000

# twox-256 of the default root payload and of the first linked anchor payload
# at LEDGER_TIMESTAMP
ROOT_HASH_AT_1600000000000 = "0x9dc6ccf68815d925afe31d2e7c10e55864c645f5e21c1f02fb404cdfb4b6441c"
FIRST_LINK_AT_1600000000000 = "0x01a3ec50fdc02bc877ed2ddf7fb98ecd495779bd10fb6542fa6c3aec39a35c1f"


@pytest.fixture
def eve():
    """Well-known development identity used by the pipeline by default."""
    return Keypair.from_uri("//Eve")


@pytest.fixture
def alice():
    return Keypair.from_uri("//Alice")


@pytest.fixture
def ledger(eve):
    """In-memory ledger with a fixed timestamp and Eve endowed at nonce 0."""
    mem = InMemoryLedger(timestamp_ms=LEDGER_TIMESTAMP)
    mem.endow(eve.address)
    return mem


@pytest.fixture
def run():
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.run


@pytest.fixture(autouse=True)
def fresh_settings():
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture(autouse=True)
def reset_anchornet_logger():
    yield
    root = logging.getLogger("anchornet")
    for handler in list(root.handlers):
        root.removeHandler(handler)
