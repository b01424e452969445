"""
WebSocket ledger for Substrate-style nodes.

- JSON-RPC 2.0 over a single long-lived WebSocket connection
- Responses are matched to requests by id
- Subscription notifications are routed by subscription id; notifications
  that arrive before the subscription id has been handed back are buffered
- Storage is read directly (Timestamp.Now, System.Account, System.Events)
- InBlock / Finalized notifications carry the extrinsic's dispatch outcome,
  read from the block's System.Events before the notification is delivered
- When the connection is lost, pending requests fail and every watched
  submission receives a LOST notification
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections import defaultdict
from dataclasses import dataclass, replace
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import websockets
from websockets.exceptions import ConnectionClosed, InvalidHandshake, InvalidURI

from anchornet.codec.events import ExtrinsicOutcome, find_outcome
from anchornet.codec.scale import decode_u32, decode_u64, encode_call
from anchornet.core.registry import MetadataRegistry
from anchornet.crypto.hasher import blake2_128, twox_128
from anchornet.crypto.keys import Keypair, ss58_decode
from anchornet.ledger.base import EventCallback, Ledger
from anchornet.ledger.extrinsic import ChainContext, build_signed_extrinsic, extrinsic_hash
from anchornet.protocol.enums import TxStatus
from anchornet.protocol.errors import (
    AnchorNetError,
    OversizedBatch,
    RegistryError,
    Rejected,
    TransportError,
    UnknownAccount,
)
from anchornet.protocol.models import Batch, LedgerEvent, RuntimeVersion, Submittable
from anchornet.utils.json import json_dumps

logger = logging.getLogger(__name__)

TIMESTAMP_NOW_KEY = twox_128(b"Timestamp") + twox_128(b"Now")
SYSTEM_ACCOUNT_PREFIX = twox_128(b"System") + twox_128(b"Account")
SYSTEM_EVENTS_KEY = twox_128(b"System") + twox_128(b"Events")

_SIMPLE_STATUSES = {
    "future": TxStatus.FUTURE,
    "ready": TxStatus.READY,
    "dropped": TxStatus.DROPPED,
    "invalid": TxStatus.INVALID,
}

_HASH_STATUSES = {
    "inBlock": TxStatus.IN_BLOCK,
    "retracted": TxStatus.RETRACTED,
    "finalityTimeout": TxStatus.FINALITY_TIMEOUT,
    "finalized": TxStatus.FINALIZED,
    "usurped": TxStatus.USURPED,
}

_FINAL_STATUSES = {
    TxStatus.FINALIZED,
    TxStatus.FINALITY_TIMEOUT,
    TxStatus.USURPED,
    TxStatus.DROPPED,
    TxStatus.INVALID,
}

_INCLUDED_STATUSES = {TxStatus.IN_BLOCK, TxStatus.FINALIZED}


class RpcError(TransportError):
    """Error object returned by the node for a request."""

    def __init__(self, method: str, code: int, message: str, data: Any = None):
        self.method = method
        self.rpc_code = code
        self.rpc_message = message
        self.data = data
        super().__init__(f"{method} failed: {self.describe()}")

    def describe(self) -> str:
        text = f"{self.rpc_code}: {self.rpc_message}"
        if self.data:
            text += f": {self.data}"
        return text


def parse_status(result: Any) -> Optional[LedgerEvent]:
    """
    Translate an author_extrinsicUpdate payload into a LedgerEvent.

        "ready" | "future" | "dropped" | "invalid"
        {"broadcast": [peer ids]}
        {"inBlock" | "retracted" | "finalityTimeout" | "finalized": block hash}
        {"usurped": replacing extrinsic hash}
    """
    if isinstance(result, str):
        status = _SIMPLE_STATUSES.get(result)
        if status is None:
            return None
        return LedgerEvent(status, reason=result if status in (TxStatus.DROPPED, TxStatus.INVALID) else None)

    if isinstance(result, dict) and len(result) == 1:
        key, value = next(iter(result.items()))
        if key == "broadcast":
            return LedgerEvent(TxStatus.BROADCAST, reason=f"{len(value or [])} peers")
        status = _HASH_STATUSES.get(key)
        if status is TxStatus.USURPED:
            return LedgerEvent(status, reason=f"usurped by {value}")
        if status is not None:
            return LedgerEvent(status, block_hash=value)
    return None


def _exhausts_resources(error: RpcError) -> bool:
    text = f"{error.rpc_message} {error.data or ''}".lower()
    return "exhaust" in text or "block limits" in text


@dataclass
class _Watch:
    tx_hash: str
    callback: EventCallback
    # Last delivery still resolving its dispatch outcome
    tail: Optional[asyncio.Task] = None


class WebSocketLedger(Ledger):
    """
    Usage:
        async with WebSocketLedger("ws://localhost:9944", registry) as ledger:
            now = await ledger.now()
    """

    def __init__(
        self,
        url: str,
        registry: Optional[MetadataRegistry] = None,
        *,
        request_timeout: float = 30.0,
        connect: Optional[Callable[..., Any]] = None,
    ) -> None:
        self._url = url
        self._registry = registry or MetadataRegistry.default()
        self._request_timeout = request_timeout
        self._connect = connect or websockets.connect

        self._ws: Any = None
        self._reader: Optional[asyncio.Task] = None
        self._lost: Optional[str] = None
        self._next_id = 0
        self._pending: Dict[int, Tuple[str, asyncio.Future]] = {}
        self._subscriptions: Dict[str, _Watch] = {}
        self._early: Dict[str, List[Any]] = defaultdict(list)
        self._watched: Dict[str, str] = {}
        self._deliveries: Set[asyncio.Task] = set()
        self._outcomes: Dict[Tuple[str, str], ExtrinsicOutcome] = {}
        self._ctx: Optional[ChainContext] = None

    # ----------------------------------------------------------------------
    # LIFECYCLE
    # ----------------------------------------------------------------------
    @property
    def is_open(self) -> bool:
        return self._ws is not None

    @property
    def chain(self) -> Optional[ChainContext]:
        return self._ctx

    @property
    def hash_width(self) -> int:
        return self._registry.hash_width

    async def open(self) -> None:
        if self._ws is not None:
            return

        try:
            self._ws = await self._connect(self._url, max_size=None)
        except (OSError, asyncio.TimeoutError, InvalidURI, InvalidHandshake) as e:
            raise TransportError(f"cannot connect to {self._url}: {e}") from e

        self._lost = None
        self._reader = asyncio.create_task(self._read_loop(self._ws))

        try:
            genesis = await self._request("chain_getBlockHash", [0])
            runtime = RuntimeVersion.from_rpc(await self._request("state_getRuntimeVersion", []))
        except BaseException:
            await self.close()
            raise

        self._ctx = ChainContext(
            genesis_hash=bytes.fromhex(genesis[2:]),
            runtime=runtime,
            address_type=self._registry.address_type,
        )
        logger.info(
            "Connected to %s (%s spec=%d tx=%d)",
            self._url, runtime.spec_name or "runtime", runtime.spec_version, runtime.transaction_version,
        )

    async def close(self) -> None:
        ws, self._ws = self._ws, None
        reader, self._reader = self._reader, None

        # Closing on purpose: watched submissions are released, not failed
        self._subscriptions.clear()
        self._early.clear()
        self._watched.clear()
        self._outcomes.clear()

        deliveries, self._deliveries = self._deliveries, set()
        for task in deliveries:
            task.cancel()

        if reader is not None:
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass

        if ws is not None:
            await ws.close()

        self._fail_pending(TransportError("connection closed"))
        self._lost = None

    # ----------------------------------------------------------------------
    # JSON-RPC plumbing
    # ----------------------------------------------------------------------
    async def _read_loop(self, ws: Any) -> None:
        reason = f"connection to {self._url} lost"
        try:
            async for raw in ws:
                try:
                    message = json.loads(raw)
                except ValueError:
                    logger.warning("Ignoring malformed frame from %s: %.120r", self._url, raw)
                    continue
                if not isinstance(message, dict):
                    logger.warning("Ignoring non-object frame from %s: %.120r", self._url, raw)
                    continue
                self._dispatch(message)
        except ConnectionClosed as e:
            reason = f"{reason}: {e}"
            logger.warning("Connection to %s closed: %s", self._url, e)
        except Exception as e:
            reason = f"{reason}: {e}"
            logger.exception("Reader for %s failed", self._url)
        finally:
            if ws is self._ws:
                self._lost = reason
            self._fail_pending(TransportError(reason))
            self._fail_watches(reason)

    def _dispatch(self, message: Dict[str, Any]) -> None:
        if "id" in message:
            method, fut = self._pending.pop(message["id"], ("", None))
            if fut is None or fut.done():
                return
            error = message.get("error")
            if error:
                fut.set_exception(
                    RpcError(method, error.get("code", 0), error.get("message", ""), error.get("data"))
                )
            else:
                fut.set_result(message.get("result"))
            return

        params = message.get("params") or {}
        sub_id = params.get("subscription")
        if sub_id is None:
            logger.debug("Ignoring unsolicited message: %s", message)
            return

        watch = self._subscriptions.get(sub_id)
        if watch is None:
            self._early[sub_id].append(params.get("result"))
        else:
            self._on_status(sub_id, watch, params.get("result"))

    def _fail_pending(self, error: Exception) -> None:
        pending, self._pending = self._pending, {}
        for _, fut in pending.values():
            if not fut.done():
                fut.set_exception(error)

    def _fail_watches(self, reason: str) -> None:
        watches, self._subscriptions = self._subscriptions, {}
        for watch in watches.values():
            logger.error("Lost track of %s: %s", watch.tx_hash, reason)
            watch.callback(LedgerEvent(TxStatus.LOST, reason=reason))

    async def _request(self, method: str, params: List[Any]) -> Any:
        if self._ws is None:
            raise TransportError("ledger handle is not open")
        if self._lost is not None:
            raise TransportError(self._lost)

        self._next_id += 1
        request_id = self._next_id
        fut = asyncio.get_running_loop().create_future()
        self._pending[request_id] = (method, fut)

        try:
            await self._ws.send(json_dumps({
                "jsonrpc": "2.0",
                "id": request_id,
                "method": method,
                "params": params,
            }))
            return await asyncio.wait_for(fut, self._request_timeout)
        except asyncio.TimeoutError:
            raise TransportError(f"{method} timed out after {self._request_timeout:.1f}s") from None
        except ConnectionClosed as e:
            raise TransportError(f"connection closed during {method}: {e}") from e
        finally:
            self._pending.pop(request_id, None)

    async def _storage(self, key: bytes, at: Optional[str] = None) -> Optional[bytes]:
        params: List[Any] = ["0x" + key.hex()]
        if at is not None:
            params.append(at)
        result = await self._request("state_getStorage", params)
        if result is None:
            return None
        return bytes.fromhex(result[2:])

    # ----------------------------------------------------------------------
    # QUERIES
    # ----------------------------------------------------------------------
    async def now(self) -> int:
        raw = await self._storage(TIMESTAMP_NOW_KEY)
        if raw is None:
            raise TransportError("node returned no Timestamp.Now value")
        return decode_u64(raw)

    async def account_nonce(self, address: str) -> int:
        public_key = ss58_decode(address)
        raw = await self._storage(SYSTEM_ACCOUNT_PREFIX + blake2_128(public_key) + public_key)
        if raw is None:
            raise UnknownAccount(address)
        # AccountInfo starts with the u32 nonce
        return decode_u32(raw)

    async def next_index(self, address: str) -> int:
        return int(await self._request("system_accountNextIndex", [address]))

    async def extrinsic_outcome(self, block_hash: str, tx_hash: str) -> ExtrinsicOutcome:
        """
        Dispatch outcome of a submitted extrinsic in the given block.

        Raises TransportError when the block does not contain the extrinsic
        or has no events, RegistryError when the events cannot be decoded
        with the registry's layouts.
        """
        cached = self._outcomes.get((block_hash, tx_hash))
        if cached is not None:
            return cached

        block = await self._request("chain_getBlock", [block_hash])
        extrinsics = ((block or {}).get("block") or {}).get("extrinsics") or []
        index = next(
            (i for i, xt in enumerate(extrinsics) if extrinsic_hash(bytes.fromhex(xt[2:])) == tx_hash),
            None,
        )
        if index is None:
            raise TransportError(f"extrinsic {tx_hash} not found in block {block_hash}")

        raw = await self._storage(SYSTEM_EVENTS_KEY, block_hash)
        if raw is None:
            raise TransportError(f"node returned no System.Events for block {block_hash}")

        outcome = find_outcome(raw, index, self._registry)
        if outcome is None:
            raise RegistryError(f"no ExtrinsicSuccess/ExtrinsicFailed event for extrinsic {index} in {block_hash}")

        self._outcomes[(block_hash, tx_hash)] = outcome
        return outcome

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
        if self._ctx is None:
            raise TransportError("ledger handle is not open")

        extrinsic = build_signed_extrinsic(encode_call(call, self._registry), signer, nonce, self._ctx)
        tx_hash = extrinsic_hash(extrinsic)

        try:
            sub_id = await self._request("author_submitAndWatchExtrinsic", ["0x" + extrinsic.hex()])
        except RpcError as e:
            if _exhausts_resources(e):
                size = len(call) if isinstance(call, Batch) else 1
                raise OversizedBatch(size, detail=e.describe()) from e
            raise Rejected(e.describe()) from e

        watch = _Watch(tx_hash, callback)
        self._subscriptions[sub_id] = watch
        self._watched[tx_hash] = sub_id

        for result in self._early.pop(sub_id, []):
            self._on_status(sub_id, watch, result)

        # The connection may have dropped between the reply and this point
        if self._lost is not None and self._subscriptions.pop(sub_id, None) is not None:
            logger.error("Lost track of %s: %s", tx_hash, self._lost)
            callback(LedgerEvent(TxStatus.LOST, reason=self._lost))
        return tx_hash

    def _on_status(self, sub_id: str, watch: _Watch, result: Any) -> None:
        event = parse_status(result)
        if event is None:
            logger.warning("Unrecognized extrinsic status: %r", result)
            return

        if event.status in _FINAL_STATUSES:
            self._subscriptions.pop(sub_id, None)

        if event.status in _INCLUDED_STATUSES or (watch.tail is not None and not watch.tail.done()):
            # Keep delivery order while an earlier notification is still resolving
            task = asyncio.get_running_loop().create_task(self._deliver(watch, event, watch.tail))
            watch.tail = task
            self._deliveries.add(task)
            task.add_done_callback(self._deliveries.discard)
        else:
            watch.callback(event)

    async def _deliver(self, watch: _Watch, event: LedgerEvent, previous: Optional[asyncio.Task]) -> None:
        if previous is not None:
            await previous

        if event.status in _INCLUDED_STATUSES and event.block_hash:
            try:
                outcome = await self.extrinsic_outcome(event.block_hash, watch.tx_hash)
            except AnchorNetError as e:
                logger.error("Cannot read the outcome of %s in %s: %s", watch.tx_hash, event.block_hash, e)
                watch.callback(LedgerEvent(TxStatus.LOST, block_hash=event.block_hash, reason=str(e)))
                return
            if outcome.interrupted_at is not None:
                logger.warning("Batch %s interrupted at item %d", watch.tx_hash, outcome.interrupted_at)
            if outcome.dispatch_error is not None:
                event = replace(event, dispatch_error=outcome.dispatch_error)

        watch.callback(event)

    async def unwatch(self, tx_hash: str) -> None:
        sub_id = self._watched.pop(tx_hash, None)
        if sub_id is None:
            return
        self._subscriptions.pop(sub_id, None)
        await self._request("author_unwatchExtrinsic", [sub_id])
