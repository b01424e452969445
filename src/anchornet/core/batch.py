"""
Batch aggregation.

A batch is one utility.batch call carrying N independent operations in
construction order. No size limit is enforced here; the ledger reports
OversizedBatch and partition() exists for callers that want to stay under
a known limit.
"""

from __future__ import annotations

from typing import Iterable, List

from anchornet.protocol.errors import EmptyBatch, InvalidParameter
from anchornet.protocol.models import Batch, Operation

BATCH_TARGET = "utility.batch"


class BatchAggregator:
    def __init__(self, target: str = BATCH_TARGET) -> None:
        self.target = target

    def aggregate(self, operations: Iterable[Operation]) -> Batch:
        ops = tuple(operations)
        if not ops:
            raise EmptyBatch()
        return Batch(ops, self.target)

    def partition(self, operations: Iterable[Operation], max_size: int) -> List[Batch]:
        """Split into consecutive batches of at most max_size operations."""
        if max_size < 1:
            raise InvalidParameter(f"max batch size must be at least 1, got {max_size}")

        ops = list(operations)
        if not ops:
            raise EmptyBatch()
        return [self.aggregate(ops[i:i + max_size]) for i in range(0, len(ops), max_size)]
