"""
Tests for nonce sequencing.
"""

import pytest

from anchornet.core.nonce import AUTOMATIC, NonceSequencer
from anchornet.crypto.keys import Keypair
from anchornet.ledger.memory import InMemoryLedger
from anchornet.protocol.errors import InvalidParameter, UnknownAccount
from anchornet.protocol.models import Operation


class TestNonceSequencer:
    def test_next_nonce_is_confirmed_nonce(self, run, ledger, eve):
        ledger.endow(eve.address, nonce=4)

        async def scenario():
            async with ledger:
                return await NonceSequencer(ledger).next_nonce(eve)

        assert run(scenario()) == 4

    def test_unknown_account(self, run, ledger):
        stranger = Keypair.generate()

        async def scenario():
            async with ledger:
                await NonceSequencer(ledger).next_nonce(stranger)

        with pytest.raises(UnknownAccount):
            run(scenario())

    def test_explicit_nonce_passes_through(self, run, ledger, eve):
        async def scenario():
            async with ledger:
                return await NonceSequencer(ledger).resolve(eve, 9)

        assert run(scenario()) == 9

    def test_negative_nonce_rejected(self, run, ledger, eve):
        async def scenario():
            async with ledger:
                await NonceSequencer(ledger).resolve(eve, -5)

        with pytest.raises(InvalidParameter):
            run(scenario())

    def test_automatic_counts_pending_pool(self, run, eve):
        """Back-to-back automatic submissions get consecutive nonces."""
        ledger = InMemoryLedger(auto_seal=False)
        ledger.endow(eve.address, nonce=2)

        async def scenario():
            async with ledger:
                nonces = NonceSequencer(ledger)
                first = await nonces.resolve(eve, AUTOMATIC)
                await ledger.submit_and_watch(Operation("mtype.anchor", ()), eve, first, lambda e: None)
                second = await nonces.resolve(eve)
                return first, second

        assert run(scenario()) == (2, 3)

    def test_reserve_hands_out_consecutive_values(self, run, ledger, eve):
        ledger.endow(eve.address, nonce=5)

        async def scenario():
            async with ledger:
                nonces = NonceSequencer(ledger)
                return [await nonces.reserve(eve) for _ in range(3)]

        assert run(scenario()) == [5, 6, 7]

    def test_reset_reseeds_from_ledger(self, run, ledger, eve):
        async def scenario():
            async with ledger:
                nonces = NonceSequencer(ledger)
                await nonces.reserve(eve)
                await nonces.reserve(eve)
                nonces.reset(eve)
                return await nonces.reserve(eve)

        assert run(scenario()) == 0
