from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from anchornet.utils.timestamps import now_iso

from .enums import TxStatus
from .errors import InvalidParameter


# -------------------------
# CONTENT HASHES
# -------------------------

@dataclass(frozen=True)
class ContentHash:
    """
    Fixed-width content identifier.

    The width is always a positive multiple of 64 bits.
    """
    digest: bytes

    def __post_init__(self) -> None:
        if not self.digest or len(self.digest) % 8:
            raise InvalidParameter(
                f"content hash must be a positive multiple of 64 bits, got {len(self.digest) * 8}"
            )

    @property
    def width(self) -> int:
        return len(self.digest) * 8

    @property
    def hex(self) -> str:
        return "0x" + self.digest.hex()

    @classmethod
    def from_hex(cls, value: str) -> "ContentHash":
        raw = value[2:] if value.startswith("0x") else value
        try:
            return cls(bytes.fromhex(raw))
        except ValueError as e:
            raise InvalidParameter(f"invalid hex content hash {value!r}: {e}") from e

    def __str__(self) -> str:
        return self.hex


# -------------------------
# OPERATIONS
# -------------------------

@dataclass(frozen=True)
class Operation:
    """
    Unsigned call descriptor: "<section>.<method>" plus positional arguments.
    """
    target: str
    args: Tuple[Any, ...] = ()

    @property
    def section(self) -> str:
        return self.target.split(".", 1)[0]

    @property
    def method(self) -> str:
        return self.target.split(".", 1)[-1]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.target,
            "args": [_arg_to_json(a) for a in self.args],
        }


@dataclass(frozen=True)
class Batch:
    """
    Ordered operations submitted atomically as one call.
    """
    operations: Tuple[Operation, ...]
    target: str = "utility.batch"

    def __len__(self) -> int:
        return len(self.operations)

    def __iter__(self) -> Iterator[Operation]:
        return iter(self.operations)

    def as_operation(self) -> Operation:
        return Operation(self.target, (self.operations,))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "target": self.target,
            "operations": [op.to_dict() for op in self.operations],
        }


Submittable = Union[Operation, Batch]


def _arg_to_json(arg: Any) -> Any:
    if isinstance(arg, ContentHash):
        return arg.hex
    if isinstance(arg, Operation):
        return arg.to_dict()
    if isinstance(arg, (tuple, list)):
        return [_arg_to_json(a) for a in arg]
    if isinstance(arg, bytes):
        return "0x" + arg.hex()
    return arg


# -------------------------
# LEDGER NOTIFICATIONS
# -------------------------

@dataclass(frozen=True)
class RawDispatchError:
    """
    Undecoded dispatch failure as reported by the ledger.

    kind is "module" for pallet errors (module_index/error_index set),
    otherwise one of the ledger's generic kinds ("bad_origin", "cannot_lookup", "other", ...).
    """
    kind: str
    module_index: Optional[int] = None
    error_index: Optional[int] = None
    detail: str = ""

    @property
    def is_module(self) -> bool:
        return self.kind == "module" and self.module_index is not None and self.error_index is not None

    @classmethod
    def module(cls, module_index: int, error_index: int) -> "RawDispatchError":
        return cls(kind="module", module_index=module_index, error_index=error_index)

    def __str__(self) -> str:
        if self.is_module:
            return f"Module {{ index: {self.module_index}, error: {self.error_index} }}"
        return f"{self.kind}: {self.detail}" if self.detail else self.kind


@dataclass(frozen=True)
class DecodedError:
    section: str
    name: str
    documentation: Tuple[str, ...] = ()

    def __str__(self) -> str:
        return f"{self.section}.{self.name}: {' '.join(self.documentation)}"


@dataclass(frozen=True)
class LedgerEvent:
    status: TxStatus
    block_hash: Optional[str] = None
    dispatch_error: Optional[RawDispatchError] = None
    reason: Optional[str] = None
    received_at: str = field(default_factory=now_iso)


@dataclass
class RuntimeVersion:
    spec_version: int
    transaction_version: int
    spec_name: str = ""

    @classmethod
    def from_rpc(cls, data: Dict[str, Any]) -> "RuntimeVersion":
        return cls(
            spec_version=int(data["specVersion"]),
            transaction_version=int(data.get("transactionVersion", 1)),
            spec_name=data.get("specName", ""),
        )


def operations_of(call: Submittable) -> List[Operation]:
    if isinstance(call, Batch):
        return list(call.operations)
    return [call]
