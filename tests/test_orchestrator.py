"""
Tests for the anchoring pipeline.

Covers:
1. End-to-end success (root + linked anchors, parent linkage, payload format)
2. Sequencing: the batch is never submitted before the root is in a block
3. Failure paths: dispatch error, rejection, oversized batch, unknown
   account, timeout
4. Nonce modes and batch partitioning
5. Tracing
"""

import asyncio

import pytest

from anchornet.core.orchestrator import AnchorPipeline, PipelineConfig, run_pipeline
from anchornet.core.tracing import PipelineTracer
from anchornet.core.tracker import SubmissionTracker
from anchornet.crypto.hasher import content_hash
from anchornet.crypto.keys import Keypair
from anchornet.ledger.memory import InMemoryLedger
from anchornet.protocol.enums import ErrorCode, HashAlgorithm, NonceMode, SubmissionState
from anchornet.protocol.errors import (
    DispatchError,
    InvalidParameter,
    OversizedBatch,
    Rejected,
    SubmissionTimeout,
    UnknownAccount,
)
from anchornet.protocol.models import Batch, RawDispatchError

from conftest import FIRST_LINK_AT_1600000000000, LEDGER_TIMESTAMP, ROOT_HASH_AT_1600000000000

def _run_pipeline(run, ledger, account, config, tracer=None):
    return run(run_pipeline(ledger, account, config, tracer=tracer))

def _batches(ledger):
    return [call for call, _, _ in ledger.submissions if isinstance(call, Batch)]

# ===========================================================================
# 1. End-to-end
# ===========================================================================

class TestPipelineSuccess:
    def test_root_then_linked_batch(self, run, ledger, eve):
        result = _run_pipeline(run, ledger, eve, PipelineConfig(count=5))

        assert result.ok
        assert result.exit_code == 0
        assert result.timestamp == LEDGER_TIMESTAMP
        assert result.root.state in (SubmissionState.IN_BLOCK, SubmissionState.FINALIZED)
        assert result.linked_count == 5
        assert [b.size for b in result.batches] == [5]
        assert len(ledger.submissions) == 2

    def test_root_hash_derives_from_schema_and_timestamp(self, run, ledger, eve):
        result = _run_pipeline(run, ledger, eve, PipelineConfig(count=1))

        expected = content_hash(f"{{ name, company }}{LEDGER_TIMESTAMP}")
        assert result.root_hash == expected
        assert result.root_hash.hex == ROOT_HASH_AT_1600000000000
        root_call = ledger.submissions[0][0]
        assert root_call.target == "mtype.anchor"
        assert root_call.args == (expected,)

    def test_every_link_references_root(self, run, ledger, eve):
        result = _run_pipeline(run, ledger, eve, PipelineConfig(count=5))

        (batch,) = _batches(ledger)
        assert batch.target == "utility.batch"
        for i, op in enumerate(batch):
            assert op.target == "mark.anchor"
            link, parent, extra = op.args
            assert link == content_hash(f"https://dhiway.com/{LEDGER_TIMESTAMP}/{i}")
            assert parent == result.root_hash
            assert extra is None
        assert batch.operations[0].args[0].hex == FIRST_LINK_AT_1600000000000

    def test_custom_schema_link_base_and_hash(self, run, ledger, eve):
        config = PipelineConfig(
            schema="{ title }",
            link_base="https://example.org",
            count=2,
            hash_width=256,
            algorithm=HashAlgorithm.BLAKE2,
        )
        result = _run_pipeline(run, ledger, eve, config)

        assert result.root_hash == content_hash(f"{{ title }}{LEDGER_TIMESTAMP}", 256, HashAlgorithm.BLAKE2)
        (batch,) = _batches(ledger)
        assert batch.operations[1].args[0] == content_hash(
            f"https://example.org/{LEDGER_TIMESTAMP}/1", 256, HashAlgorithm.BLAKE2
        )

    def test_ledger_released(self, run, ledger, eve):
        _run_pipeline(run, ledger, eve, PipelineConfig(count=1))
        assert not ledger.is_open

    def test_awaiting_finalization(self, run, ledger, eve):
        config = PipelineConfig(
            count=2,
            root_state=SubmissionState.FINALIZED,
            batch_state=SubmissionState.FINALIZED,
        )
        result = _run_pipeline(run, ledger, eve, config)

        assert result.ok
        assert result.root.state is SubmissionState.FINALIZED
        assert result.batches[0].state is SubmissionState.FINALIZED

    def test_result_to_dict(self, run, ledger, eve):
        data = _run_pipeline(run, ledger, eve, PipelineConfig(count=2)).to_dict()

        assert data["linkedCount"] == 2
        assert data["failedStep"] is None
        assert data["error"] is None
        assert data["root"]["label"] == "root"
        assert data["batches"][0]["size"] == 2

# ===========================================================================
# 2. Sequencing
# ===========================================================================

class TestSequencing:
    def test_batch_waits_for_root_inclusion(self, run, eve):
        """With block production held, only the root reaches the ledger."""
        ledger = InMemoryLedger(timestamp_ms=LEDGER_TIMESTAMP, auto_seal=False)
        ledger.endow(eve.address)

        async def scenario():
            async with ledger:
                pipeline = AnchorPipeline(ledger, SubmissionTracker(ledger), PipelineConfig(count=3))
                task = asyncio.create_task(pipeline.run(eve))
                for _ in range(10):
                    await asyncio.sleep(0)
                held = [(e.kind, e.target) for e in ledger.log]

                while not task.done():
                    ledger.seal()
                    await asyncio.sleep(0)
                return held, task.result()

        held, result = run(scenario())
        assert held == [("submit", "mtype.anchor")]
        assert result.ok

        root_in_block = ledger.first_index("in_block", "mtype.anchor")
        batch_submit = ledger.first_index("submit", "utility.batch")
        assert 0 <= root_in_block < batch_submit

    def test_consecutive_nonces(self, run, ledger, eve):
        ledger.endow(eve.address, nonce=11)
        _run_pipeline(run, ledger, eve, PipelineConfig(count=2))

        assert [nonce for _, _, nonce in ledger.submissions] == [11, 12]

# ===========================================================================
# 3. Failure paths
# ===========================================================================

class TestPipelineFailures:
    def test_root_dispatch_error_stops_run(self, run, ledger, eve):
        ledger.fail_dispatch("mtype.anchor", RawDispatchError.module(40, 0))

        result = _run_pipeline(run, ledger, eve, PipelineConfig(count=5))

        assert not result.ok
        assert result.exit_code == 1
        assert result.failed_step == "root"
        assert isinstance(result.error, DispatchError)
        assert "mtype.HashAlreadyAnchored" in str(result.error)
        assert result.root.state is SubmissionState.DISPATCH_ERROR
        assert result.batches == []
        assert _batches(ledger) == []

    def test_root_rejected(self, run, ledger, eve):
        ledger.reject_target("mtype.anchor", "Inability to pay some fees")

        result = _run_pipeline(run, ledger, eve, PipelineConfig(count=5))

        assert result.failed_step == "root"
        assert isinstance(result.error, Rejected)
        assert result.root.state is SubmissionState.REJECTED
        assert ledger.submissions == []

    def test_batch_rejected(self, run, ledger, eve):
        ledger.reject_target("utility.batch", "Inability to pay some fees")

        result = _run_pipeline(run, ledger, eve, PipelineConfig(count=5))

        assert result.failed_step == "batch[0]"
        assert isinstance(result.error, Rejected)
        assert result.root.state in (SubmissionState.IN_BLOCK, SubmissionState.FINALIZED)
        assert result.batches[0].state is SubmissionState.REJECTED

    def test_batch_dispatch_error(self, run, ledger, eve):
        ledger.fail_dispatch("utility.batch", RawDispatchError.module(1, 0))

        result = _run_pipeline(run, ledger, eve, PipelineConfig(count=3))

        assert result.failed_step == "batch[0]"
        assert "utility.TooManyCalls" in str(result.error)
        assert result.error.code is ErrorCode.DISPATCH_ERROR

    def test_oversized_batch(self, run, eve):
        ledger = InMemoryLedger(timestamp_ms=LEDGER_TIMESTAMP, max_batch_size=3)
        ledger.endow(eve.address)

        result = _run_pipeline(run, ledger, eve, PipelineConfig(count=5))

        assert result.failed_step == "batch[0]"
        assert isinstance(result.error, OversizedBatch)
        assert result.error.size == 5
        assert result.batches == []

    def test_unknown_account_submits_nothing(self, run, ledger):
        result = _run_pipeline(run, ledger, Keypair.generate(), PipelineConfig(count=2))

        assert result.failed_step == "prepare"
        assert isinstance(result.error, UnknownAccount)
        assert result.root is None
        assert ledger.submissions == []

    def test_root_timeout(self, run, eve):
        ledger = InMemoryLedger(timestamp_ms=LEDGER_TIMESTAMP, auto_seal=False)
        ledger.endow(eve.address)

        result = _run_pipeline(run, ledger, eve, PipelineConfig(count=2, timeout=0.05))

        assert result.failed_step == "root"
        assert isinstance(result.error, SubmissionTimeout)
        assert _batches(ledger) == []

    @pytest.mark.parametrize(
        "config",
        [
            PipelineConfig(count=0),
            PipelineConfig(max_batch_size=0),
            PipelineConfig(timeout=-1),
            PipelineConfig(hash_width=100),
        ],
    )
    def test_invalid_config(self, run, ledger, eve, config):
        result = _run_pipeline(run, ledger, eve, config)

        assert isinstance(result.error, InvalidParameter)
        assert ledger.submissions == []

# ===========================================================================
# 4. Nonce modes and partitioning
# ===========================================================================

class TestPipelineOptions:
    def test_explicit_nonce_mode(self, run, ledger, eve):
        ledger.endow(eve.address, nonce=7)

        result = _run_pipeline(run, ledger, eve, PipelineConfig(count=2, nonce_mode=NonceMode.EXPLICIT))

        assert result.ok
        assert result.root.nonce == 7
        assert result.batches[0].nonce == 8

    def test_partitioned_batches(self, run, ledger, eve):
        result = _run_pipeline(run, ledger, eve, PipelineConfig(count=5, max_batch_size=2))

        assert result.ok
        assert [b.size for b in result.batches] == [2, 2, 1]
        assert [b.label for b in result.batches] == ["batch[0]", "batch[1]", "batch[2]"]
        assert [len(b) for b in _batches(ledger)] == [2, 2, 1]
        assert [nonce for _, _, nonce in ledger.submissions] == [0, 1, 2, 3]

    def test_partitions_fit_ledger_limit(self, run, eve):
        ledger = InMemoryLedger(timestamp_ms=LEDGER_TIMESTAMP, max_batch_size=3)
        ledger.endow(eve.address)

        result = _run_pipeline(run, ledger, eve, PipelineConfig(count=7, max_batch_size=3))

        assert result.ok
        assert result.linked_count == 7

# ===========================================================================
# 5. Tracing
# ===========================================================================

class TestPipelineTracing:
    def test_spans_per_step(self, run, ledger, eve):
        tracer = PipelineTracer()
        result = _run_pipeline(run, ledger, eve, PipelineConfig(count=2), tracer=tracer)

        spans = tracer.spans(result.trace_id)
        assert [s.name for s in spans] == ["prepare", "root", "links", "batch[0]", "pipeline"]
        assert [s.step for s in spans][-1] is None
        assert all(s.latency_ms >= 0 for s in spans)
        assert tracer.failed_step(result.trace_id) is None

    def test_failed_step_span(self, run, ledger, eve):
        ledger.reject_target("mtype.anchor", "Inability to pay some fees")
        tracer = PipelineTracer()
        result = _run_pipeline(run, ledger, eve, PipelineConfig(count=2), tracer=tracer)

        spans = tracer.spans(result.trace_id)
        failed = [s for s in spans if s.error]
        assert [s.step for s in failed] == ["root"]
        assert tracer.failed_step(result.trace_id) == "root"
        assert spans[-1].attributes["failedStep"] == "root"
        assert spans[-1].attributes["ok"] is False

    def test_runs_are_kept_apart(self, run, eve):
        tracer = PipelineTracer()
        for _ in range(2):
            ledger = InMemoryLedger(timestamp_ms=LEDGER_TIMESTAMP)
            ledger.endow(eve.address)
            _run_pipeline(run, ledger, eve, PipelineConfig(count=1), tracer=tracer)

        trace_ids = {s.trace_id for s in tracer.spans()}
        assert len(trace_ids) == 2
        tracer.clear()
        assert tracer.spans() == []
