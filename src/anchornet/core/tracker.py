"""
Submission & confirmation tracking.

Each submission is an explicit state machine value. The ledger pushes every
status notification into Submission.apply() through a single callback; code
that needs to wait for a state suspends on await_state().

    CREATED → BROADCAST → IN_BLOCK → FINALIZED
        ↘ REJECTED   ↘ DISPATCH_ERROR (once included)

Nothing here retries. A failure state is surfaced to whoever awaits the
submission and logged. When the ledger loses track of a submission (LOST)
it is aborted: the state stays where it was and waiters get the error.
"""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from typing import TYPE_CHECKING, Callable, List, Optional, Tuple

from anchornet.core.nonce import AUTOMATIC, NonceSequencer
from anchornet.core.registry import MetadataRegistry
from anchornet.crypto.keys import Keypair
from anchornet.protocol.enums import SubmissionState, TxStatus
from anchornet.protocol.errors import (
    AnchorNetError,
    DispatchError,
    InvalidParameter,
    Rejected,
    SubmissionTimeout,
    TransportError,
)
from anchornet.protocol.models import Batch, LedgerEvent, Submittable

if TYPE_CHECKING:
    from anchornet.ledger.base import Ledger

logger = logging.getLogger(__name__)

Listener = Callable[["Submission", LedgerEvent], None]

_STATUS_TO_STATE = {
    TxStatus.READY: SubmissionState.BROADCAST,
    TxStatus.BROADCAST: SubmissionState.BROADCAST,
    TxStatus.IN_BLOCK: SubmissionState.IN_BLOCK,
    TxStatus.FINALIZED: SubmissionState.FINALIZED,
    TxStatus.INVALID: SubmissionState.REJECTED,
    TxStatus.DROPPED: SubmissionState.REJECTED,
    TxStatus.USURPED: SubmissionState.REJECTED,
}


def target_state(event: LedgerEvent) -> Optional[SubmissionState]:
    """
    State a ledger notification moves a submission to, or None for
    notifications that are recorded but do not change state
    (future, retracted, finality_timeout, lost).
    """
    state = _STATUS_TO_STATE.get(event.status)
    if event.dispatch_error is not None and state in (SubmissionState.IN_BLOCK, SubmissionState.FINALIZED):
        return SubmissionState.DISPATCH_ERROR
    return state


class Submission:
    """
    Lifecycle of one signed submission (single operation or batch).
    """

    def __init__(self, label: str, target: str, nonce: int, size: int = 1) -> None:
        self.label = label
        self.target = target
        self.nonce = nonce
        self.size = size

        self.state = SubmissionState.CREATED
        self.history: List[LedgerEvent] = []
        self.tx_hash: Optional[str] = None
        self.block_hash: Optional[str] = None
        self.error: Optional[AnchorNetError] = None
        self.lost = False

        self._listeners: List[Listener] = []
        self._waiters: List[Tuple[SubmissionState, asyncio.Future]] = []

    def __repr__(self) -> str:
        return f"Submission({self.label!r}, state={self.state.value}, nonce={self.nonce})"

    @property
    def is_terminal(self) -> bool:
        return SubmissionState.is_terminal(self.state)

    def add_listener(self, listener: Listener) -> None:
        """Observe every subsequent event, in delivery order."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    def apply(
        self,
        event: LedgerEvent,
        state: Optional[SubmissionState],
        error: Optional[AnchorNetError] = None,
    ) -> bool:
        """
        Record an event and move to `state` if the transition is legal.
        Returns True when the state changed.
        """
        self.history.append(event)
        for listener in self._listeners:
            listener(self, event)

        if state is None or state == self.state:
            return False

        if self.is_terminal:
            logger.debug("%s: ignoring %s after terminal state %s", self.label, event.status.value, self.state.value)
            return False

        if not SubmissionState.validate_transition(self.state, state):
            logger.warning("%s: illegal transition %s → %s ignored", self.label, self.state.value, state.value)
            return False

        self.state = state
        if event.block_hash and state is not SubmissionState.REJECTED:
            self.block_hash = event.block_hash
        if error is not None:
            self.error = error

        self._wake()
        return True

    def reject(self, error: Rejected) -> None:
        """Mark a submission the ledger refused to admit."""
        self.apply(LedgerEvent(TxStatus.INVALID, reason=error.reason), SubmissionState.REJECTED, error)

    def abort(self, error: AnchorNetError, event: Optional[LedgerEvent] = None) -> None:
        """
        Stop tracking a submission whose outcome can no longer be observed.
        A terminal submission keeps its state; otherwise every waiter fails
        with `error`.
        """
        if event is not None:
            self.apply(event, None)
        if self.is_terminal:
            return
        self.lost = True
        self.error = error
        waiters, self._waiters = self._waiters, []
        for _, fut in waiters:
            if not fut.done():
                fut.set_exception(error)

    # ------------------------------------------------------------------
    # Waiting
    # ------------------------------------------------------------------
    def _reached(self, target: SubmissionState) -> bool:
        if SubmissionState.is_failure(self.state):
            return False
        return SubmissionState.progress(self.state) >= SubmissionState.progress(target)

    def _failure(self) -> AnchorNetError:
        if self.error is not None:
            return self.error
        return AnchorNetError(f"{self.label} ended in {self.state.value}")

    def _wake(self) -> None:
        remaining = []
        for target, fut in self._waiters:
            if fut.done():
                continue
            if self._reached(target):
                fut.set_result(self.state)
            elif SubmissionState.is_failure(self.state):
                fut.set_exception(self._failure())
            else:
                remaining.append((target, fut))
        self._waiters = remaining

    async def await_state(
        self,
        target: SubmissionState = SubmissionState.IN_BLOCK,
        timeout: Optional[float] = None,
    ) -> SubmissionState:
        """
        Suspend until the submission is at or past `target` on the success
        path. Raises the submission's Rejected / DispatchError if it fails
        first, the abort error once it was aborted, SubmissionTimeout if
        `timeout` seconds pass.
        """
        if SubmissionState.progress(target) < 0:
            raise InvalidParameter(f"can only await success states, got {target.value}")

        if SubmissionState.is_failure(self.state):
            raise self._failure()
        if self._reached(target):
            return self.state
        if self.lost:
            raise self._failure()

        fut = asyncio.get_running_loop().create_future()
        self._waiters.append((target, fut))

        if timeout is None:
            return await fut
        try:
            return await asyncio.wait_for(fut, timeout)
        except asyncio.TimeoutError:
            raise SubmissionTimeout(self.label, target.value, timeout) from None


class SubmissionTracker:
    """
    Signs and submits calls through the ledger and keeps each resulting
    Submission up to date.

    Usage:
        tracker = SubmissionTracker(ledger, registry)
        sub = await tracker.submit(operation, account)
        await sub.await_state(SubmissionState.IN_BLOCK)
    """

    def __init__(
        self,
        ledger: "Ledger",
        registry: Optional[MetadataRegistry] = None,
        nonces: Optional[NonceSequencer] = None,
    ) -> None:
        self._ledger = ledger
        self._registry = registry or MetadataRegistry.default()
        self._nonces = nonces or NonceSequencer(ledger)
        self.submissions: List[Submission] = []

    @property
    def nonces(self) -> NonceSequencer:
        return self._nonces

    async def submit(
        self,
        call: Submittable,
        account: Keypair,
        nonce: int = AUTOMATIC,
        *,
        label: Optional[str] = None,
    ) -> Submission:
        """
        Submit a call and return its Submission.

        Admission refusal does not raise here: the Submission comes back in
        REJECTED and its await_state() raises. UnknownAccount, OversizedBatch
        and transport failures raise directly.
        """
        resolved = await self._nonces.resolve(account, nonce)
        size = len(call) if isinstance(call, Batch) else 1
        submission = Submission(label or call.target, call.target, resolved, size)
        self.submissions.append(submission)

        try:
            submission.tx_hash = await self._ledger.submit_and_watch(
                call, account, resolved, partial(self._on_event, submission)
            )
        except Rejected as e:
            logger.error("%s rejected: %s", submission.label, e.reason)
            submission.reject(e)
            return submission

        logger.info(
            "Submitted %s (%d operation%s) nonce=%d tx=%s",
            submission.label, size, "" if size == 1 else "s", resolved, submission.tx_hash,
        )
        return submission

    def _on_event(self, submission: Submission, event: LedgerEvent) -> None:
        if event.status is TxStatus.LOST:
            lost = TransportError(f"lost track of {submission.label}: {event.reason or 'no reason given'}")
            logger.error("%s", lost)
            submission.abort(lost, event)
            return

        state = target_state(event)
        error: Optional[AnchorNetError] = None

        if state is SubmissionState.DISPATCH_ERROR:
            raw = event.dispatch_error
            decoded = self._registry.find_meta_error(raw)
            error = DispatchError(raw, decoded)
            if decoded is not None:
                logger.error("%s: %s", submission.label, decoded)
            else:
                logger.error("%s: %s", submission.label, raw)
        elif state is SubmissionState.REJECTED:
            error = Rejected(event.reason or event.status.value)
            logger.error("%s dropped by the ledger: %s", submission.label, error.reason)
        elif event.status is TxStatus.IN_BLOCK:
            logger.info("Written to block: %s (%s)", event.block_hash, submission.label)
        elif event.status is TxStatus.FINALIZED:
            logger.info("Finalized in block: %s (%s)", event.block_hash, submission.label)
        elif event.status in (TxStatus.RETRACTED, TxStatus.FINALITY_TIMEOUT):
            logger.warning("%s: %s %s", submission.label, event.status.value, event.block_hash)
        else:
            logger.debug("%s: %s", submission.label, event.status.value)

        submission.apply(event, state, error)
