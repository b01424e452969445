"""
Nonce sequencing.

Two ways to obtain the nonce for a submission:

- AUTOMATIC: ask the ledger for its pool-aware next index at submission
  time. Back-to-back submissions never collide because the ledger counts
  what is already pending.
- explicit: fetch the confirmed nonce once, then hand out consecutive values
  locally (reserve()). Only safe while this process is the account's sole
  submitter.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, Optional

from anchornet.crypto.keys import Keypair
from anchornet.protocol.errors import InvalidParameter

if TYPE_CHECKING:
    from anchornet.ledger.base import Ledger

logger = logging.getLogger(__name__)

AUTOMATIC = -1


class NonceSequencer:
    def __init__(self, ledger: "Ledger") -> None:
        self._ledger = ledger
        self._local: Dict[str, int] = {}

    async def next_nonce(self, account: Keypair) -> int:
        """Confirmed nonce of the account. Raises UnknownAccount."""
        return await self._ledger.account_nonce(account.address)

    async def resolve(self, account: Keypair, nonce: int = AUTOMATIC) -> int:
        if nonce == AUTOMATIC:
            resolved = await self._ledger.next_index(account.address)
            logger.debug("Resolved automatic nonce for %s to %d", account.address, resolved)
            return resolved
        if not isinstance(nonce, int) or nonce < 0:
            raise InvalidParameter(f"nonce must be a non-negative integer or AUTOMATIC, got {nonce!r}")
        return nonce

    async def reserve(self, account: Keypair) -> int:
        """Hand out the next locally tracked nonce, seeding from the ledger once."""
        address = account.address
        if address not in self._local:
            self._local[address] = await self.next_nonce(account)

        nonce = self._local[address]
        self._local[address] = nonce + 1
        return nonce

    def reset(self, account: Optional[Keypair] = None) -> None:
        if account is None:
            self._local.clear()
        else:
            self._local.pop(account.address, None)
