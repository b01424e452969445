"""
Ledger handle interface.

This defines the boundary between the anchoring pipeline and a node:

    Operation | Batch  → [signed extrinsic] → node pool
    node pool          → [status notifications] → LedgerEvent callback

Ledgers DO NOT:
  - decide nonces on their own (the caller passes a resolved nonce)
  - name dispatch errors (they report the raw error, the tracker looks it
    up in the registry)
  - retry anything

Ledgers ONLY:
  - answer queries (timestamp, confirmed nonce, pool-aware next index)
  - sign + encode + submit a call
  - push every lifecycle notification for a submission, in order, with the
    raw dispatch error attached to InBlock / Finalized when dispatch failed
  - report LOST to every watched submission when they lose the node
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional

from anchornet.crypto.keys import Keypair
from anchornet.protocol.models import LedgerEvent, Submittable

EventCallback = Callable[[LedgerEvent], None]


class Ledger(ABC):
    """
    Abstract base class for ledger handles.

    Handles are opened explicitly and released on every exit path:

        async with WebSocketLedger(url, registry) as ledger:
            now = await ledger.now()
    """

    # ----------------------------------------------------------------------
    # LIFECYCLE
    # ----------------------------------------------------------------------
    @abstractmethod
    async def open(self) -> None:
        raise NotImplementedError

    @abstractmethod
    async def close(self) -> None:
        raise NotImplementedError

    @property
    @abstractmethod
    def is_open(self) -> bool:
        raise NotImplementedError

    @property
    def hash_width(self) -> Optional[int]:
        """Bit width of the ledger's Hash type, None when any width is accepted."""
        return None

    async def __aenter__(self) -> "Ledger":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # ----------------------------------------------------------------------
    # QUERIES
    # ----------------------------------------------------------------------
    @abstractmethod
    async def now(self) -> int:
        """Current ledger timestamp in milliseconds."""
        raise NotImplementedError

    @abstractmethod
    async def account_nonce(self, address: str) -> int:
        """
        Confirmed nonce of an account.
        Raises UnknownAccount if the ledger has no record of it.
        """
        raise NotImplementedError

    @abstractmethod
    async def next_index(self, address: str) -> int:
        """Next usable nonce, accounting for the ledger's pending pool."""
        raise NotImplementedError

    # ----------------------------------------------------------------------
    # SUBMISSION
    # ----------------------------------------------------------------------
    @abstractmethod
    async def submit_and_watch(
        self,
        call: Submittable,
        signer: Keypair,
        nonce: int,
        callback: EventCallback,
    ) -> str:
        """
        Sign and submit a call, delivering every status notification to
        callback. Returns the transaction hash.

        Raises Rejected when the ledger refuses admission and
        OversizedBatch when the call exceeds the ledger's resource limits.
        """
        raise NotImplementedError

    async def unwatch(self, tx_hash: str) -> None:
        """Stop delivering notifications for a submission. Optional."""
        return None


def short_hash(value: Optional[str]) -> str:
    if not value:
        return "-"
    return value if len(value) <= 18 else f"{value[:10]}...{value[-6:]}"
