from .base import Ledger, EventCallback
from .memory import InMemoryLedger, LedgerLogEntry
from .websocket import WebSocketLedger, RpcError, parse_status

__all__ = [
    "Ledger",
    "EventCallback",
    "InMemoryLedger",
    "LedgerLogEntry",
    "WebSocketLedger",
    "RpcError",
    "parse_status",
]
