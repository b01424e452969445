"""
Tests for the transaction builder and batch aggregator.
"""

import pytest

from anchornet.core.batch import BATCH_TARGET, BatchAggregator
from anchornet.core.builder import LINKED_ANCHOR, ROOT_ANCHOR, TransactionBuilder
from anchornet.crypto.hasher import content_hash
from anchornet.protocol.errors import EmptyBatch, InvalidParameter
from anchornet.protocol.models import Batch, Operation, operations_of


@pytest.fixture
def builder():
    return TransactionBuilder()


@pytest.fixture
def links(builder):
    root = content_hash("root")
    return [builder.build_anchor(content_hash(f"link/{i}"), root) for i in range(7)]


class TestTransactionBuilder:
    def test_root_anchor(self, builder):
        h = content_hash("root")
        op = builder.build_anchor(h)
        assert op == Operation(ROOT_ANCHOR, (h,))
        assert op.section == "mtype"
        assert op.method == "anchor"

    def test_linked_anchor(self, builder):
        h, parent = content_hash("link"), content_hash("root")
        op = builder.build_anchor(h, parent)
        assert op.target == LINKED_ANCHOR
        assert op.args == (h, parent, None)

    def test_linked_anchor_with_extra(self, builder):
        h, parent, extra = content_hash("a"), content_hash("b"), content_hash("c")
        assert builder.build_anchor(h, parent, extra).args == (h, parent, extra)

    def test_custom_targets(self):
        builder = TransactionBuilder(root_target="space.anchor", link_target="stream.anchor")
        assert builder.build_anchor(content_hash("a")).target == "space.anchor"

    def test_to_dict_renders_hashes(self, builder):
        h = content_hash("root")
        assert builder.build_anchor(h).to_dict() == {"target": ROOT_ANCHOR, "args": [h.hex]}


class TestBatchAggregator:
    def test_preserves_order(self, links):
        batch = BatchAggregator().aggregate(links)
        assert batch.target == BATCH_TARGET
        assert list(batch) == links
        assert len(batch) == len(links)
        assert operations_of(batch) == links

    def test_single_operation(self, links):
        assert len(BatchAggregator().aggregate(links[:1])) == 1

    def test_empty(self):
        with pytest.raises(EmptyBatch):
            BatchAggregator().aggregate([])

    def test_empty_batch_is_invalid_parameter(self):
        with pytest.raises(InvalidParameter):
            BatchAggregator().aggregate(iter(()))

    def test_as_operation(self, links):
        op = BatchAggregator().aggregate(links).as_operation()
        assert op.target == BATCH_TARGET
        assert op.args == (tuple(links),)

    def test_partition(self, links):
        batches = BatchAggregator().partition(links, 3)
        assert [len(b) for b in batches] == [3, 3, 1]
        assert [op for b in batches for op in b] == links

    def test_partition_larger_than_input(self, links):
        assert BatchAggregator().partition(links, 100) == [Batch(tuple(links))]

    def test_partition_invalid_size(self, links):
        with pytest.raises(InvalidParameter):
            BatchAggregator().partition(links, 0)

    def test_partition_empty(self):
        with pytest.raises(EmptyBatch):
            BatchAggregator().partition([], 5)
