"""
In-memory ledger.

Simulates the client-visible contract of a node: admission checks, per-account
nonce ordering, block inclusion, finality, and asynchronous status
notifications. It is used by tests and by dry runs of the pipeline.

Every admission, rejection, inclusion and finalization is appended to `log`
in the order it happened, so callers can assert on cross-submission ordering.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from anchornet.crypto.hasher import blake2_256
from anchornet.crypto.keys import Keypair
from anchornet.ledger.base import EventCallback, Ledger
from anchornet.protocol.enums import TxStatus
from anchornet.protocol.errors import OversizedBatch, Rejected, TransportError, UnknownAccount
from anchornet.protocol.models import Batch, LedgerEvent, RawDispatchError, Submittable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LedgerLogEntry:
    kind: str  # submit | rejected | in_block | finalized | dropped
    target: str
    address: str
    nonce: int
    size: int = 1
    block_hash: Optional[str] = None


@dataclass
class _PoolEntry:
    tx_hash: str
    call: Submittable
    address: str
    nonce: int
    callback: EventCallback
    loop: asyncio.AbstractEventLoop
    dispatch_error: Optional[RawDispatchError] = None
    block_hash: Optional[str] = None

    @property
    def size(self) -> int:
        return len(self.call) if isinstance(self.call, Batch) else 1


@dataclass
class _Block:
    number: int
    hash: str
    tx_hashes: List[str] = field(default_factory=list)
    finalized: bool = False


class InMemoryLedger(Ledger):
    """
    Usage:
        ledger = InMemoryLedger(timestamp_ms=1_600_000_000_000)
        ledger.endow(keypair.address)

        async with ledger:
            ...

    With auto_seal=False nothing is included until seal() is called, which
    lets tests hold a submission in the pool.
    """

    def __init__(
        self,
        *,
        timestamp_ms: Optional[int] = None,
        auto_seal: bool = True,
        auto_finalize: bool = True,
        max_batch_size: Optional[int] = None,
    ) -> None:
        self._timestamp_ms = timestamp_ms
        self._auto_seal = auto_seal
        self._auto_finalize = auto_finalize
        self._max_batch_size = max_batch_size

        self._open = False
        self._accounts: Dict[str, int] = {}
        self._pool: List[_PoolEntry] = []
        self._in_block: List[_PoolEntry] = []
        self._rejections: Dict[str, str] = {}
        self._dispatch_failures: Dict[str, RawDispatchError] = {}
        self._seq = 0

        self.blocks: List[_Block] = []
        self.log: List[LedgerLogEntry] = []
        self.submissions: List[Tuple[Submittable, str, int]] = []

    # ----------------------------------------------------------------------
    # LIFECYCLE
    # ----------------------------------------------------------------------
    async def open(self) -> None:
        self._open = True

    async def close(self) -> None:
        self._open = False

    @property
    def is_open(self) -> bool:
        return self._open

    def _ensure_open(self) -> None:
        if not self._open:
            raise TransportError("ledger handle is not open")

    # ----------------------------------------------------------------------
    # SETUP / FAULT INJECTION
    # ----------------------------------------------------------------------
    def endow(self, address: str, nonce: int = 0) -> None:
        self._accounts[address] = nonce

    def reject_target(self, target: str, reason: str) -> None:
        """Refuse admission of every call with this target."""
        self._rejections[target] = reason

    def fail_dispatch(self, target: str, error: RawDispatchError) -> None:
        """Include calls with this target but report a dispatch error."""
        self._dispatch_failures[target] = error

    # ----------------------------------------------------------------------
    # QUERIES
    # ----------------------------------------------------------------------
    async def now(self) -> int:
        self._ensure_open()
        if self._timestamp_ms is not None:
            return self._timestamp_ms
        return int(time.time() * 1000)

    async def account_nonce(self, address: str) -> int:
        self._ensure_open()
        try:
            return self._accounts[address]
        except KeyError:
            raise UnknownAccount(address) from None

    async def next_index(self, address: str) -> int:
        confirmed = await self.account_nonce(address)
        pooled = {e.nonce for e in self._pool if e.address == address}
        nonce = confirmed
        while nonce in pooled:
            nonce += 1
        return nonce

    @property
    def pool_size(self) -> int:
        return len(self._pool)

    # ----------------------------------------------------------------------
    # SUBMISSION
    # ----------------------------------------------------------------------
    async def submit_and_watch(
        self,
        call: Submittable,
        signer: Keypair,
        nonce: int,
        callback: EventCallback,
    ) -> str:
        self._ensure_open()
        loop = asyncio.get_running_loop()
        address = signer.address
        size = len(call) if isinstance(call, Batch) else 1

        if address not in self._accounts:
            raise UnknownAccount(address)

        if isinstance(call, Batch) and self._max_batch_size is not None and size > self._max_batch_size:
            self.log.append(LedgerLogEntry("rejected", call.target, address, nonce, size))
            raise OversizedBatch(size, self._max_batch_size)

        reason = self._admission_error(call, address, nonce)
        if reason is not None:
            self.log.append(LedgerLogEntry("rejected", call.target, address, nonce, size))
            raise Rejected(reason)

        self._seq += 1
        tx_hash = "0x" + blake2_256(f"{address}:{nonce}:{self._seq}").hex()
        entry = _PoolEntry(tx_hash, call, address, nonce, callback, loop)

        self._pool.append(entry)
        self.submissions.append((call, address, nonce))
        self.log.append(LedgerLogEntry("submit", call.target, address, nonce, size))

        ready = nonce == self._accounts[address] or any(
            e.address == address and e.nonce == nonce - 1 for e in self._pool
        )
        self._notify(entry, LedgerEvent(TxStatus.READY if ready else TxStatus.FUTURE))

        if self._auto_seal:
            loop.call_soon(self.seal)
        return tx_hash

    def _admission_error(self, call: Submittable, address: str, nonce: int) -> Optional[str]:
        if call.target in self._rejections:
            return self._rejections[call.target]
        if nonce < self._accounts[address]:
            return "Invalid Transaction: Transaction is outdated"
        if any(e.address == address and e.nonce == nonce for e in self._pool):
            return "Priority is too low: a transaction with this nonce is already in the pool"
        return None

    def _notify(self, entry: _PoolEntry, event: LedgerEvent) -> None:
        entry.loop.call_soon(entry.callback, event)

    # ----------------------------------------------------------------------
    # BLOCK PRODUCTION
    # ----------------------------------------------------------------------
    def seal(self) -> Optional[str]:
        """
        Include every pool transaction whose nonce is next in line for its
        account. Returns the new block hash, or None if nothing was ready.
        """
        included: List[_PoolEntry] = []
        for address in dict.fromkeys(e.address for e in self._pool):
            expected = self._accounts[address]
            while True:
                entry = next(
                    (e for e in self._pool if e.address == address and e.nonce == expected),
                    None,
                )
                if entry is None:
                    break
                included.append(entry)
                expected += 1
            self._accounts[address] = expected

        if not included:
            return None

        number = len(self.blocks) + 1
        block_hash = "0x" + blake2_256(
            f"block:{number}:" + ",".join(e.tx_hash for e in included)
        ).hex()
        self.blocks.append(_Block(number, block_hash, [e.tx_hash for e in included]))
        included_ids = {id(e) for e in included}
        self._pool = [e for e in self._pool if id(e) not in included_ids]

        for entry in included:
            entry.block_hash = block_hash
            entry.dispatch_error = self._dispatch_failures.get(entry.call.target)
            self._in_block.append(entry)
            self.log.append(
                LedgerLogEntry("in_block", entry.call.target, entry.address, entry.nonce, entry.size, block_hash)
            )
            self._notify(
                entry,
                LedgerEvent(TxStatus.IN_BLOCK, block_hash=block_hash, dispatch_error=entry.dispatch_error),
            )

        logger.debug("Sealed block #%d %s with %d extrinsics", number, block_hash, len(included))

        if self._auto_finalize:
            self.finalize()
        return block_hash

    def finalize(self) -> int:
        """Finalize every included block. Returns the number of transactions finalized."""
        for block in self.blocks:
            block.finalized = True

        finalized = self._in_block
        self._in_block = []
        for entry in finalized:
            self.log.append(
                LedgerLogEntry("finalized", entry.call.target, entry.address, entry.nonce, entry.size, entry.block_hash)
            )
            self._notify(
                entry,
                LedgerEvent(TxStatus.FINALIZED, block_hash=entry.block_hash, dispatch_error=entry.dispatch_error),
            )
        return len(finalized)

    def drop(self, tx_hash: str, reason: str = "dropped from pool") -> bool:
        """Evict a pooled transaction, as a node does when its pool overflows."""
        entry = next((e for e in self._pool if e.tx_hash == tx_hash), None)
        if entry is None:
            return False
        self._pool.remove(entry)
        self.log.append(LedgerLogEntry("dropped", entry.call.target, entry.address, entry.nonce, entry.size))
        self._notify(entry, LedgerEvent(TxStatus.DROPPED, reason=reason))
        return True

    # ----------------------------------------------------------------------
    # INSPECTION
    # ----------------------------------------------------------------------
    def entries(self, kind: Optional[str] = None, target: Optional[str] = None) -> List[LedgerLogEntry]:
        return [
            e for e in self.log
            if (kind is None or e.kind == kind) and (target is None or e.target == target)
        ]

    def first_index(self, kind: str, target: str) -> int:
        """Position of the first log entry of this kind/target, or -1."""
        for i, e in enumerate(self.log):
            if e.kind == kind and e.target == target:
                return i
        return -1
