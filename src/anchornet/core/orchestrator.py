# anchornet/core/orchestrator.py

from __future__ import annotations
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional
import logging
import uuid

from anchornet.core.batch import BatchAggregator
from anchornet.core.builder import TransactionBuilder
from anchornet.core.nonce import AUTOMATIC
from anchornet.core.registry import MetadataRegistry
from anchornet.core.tracing import PIPELINE_SPAN, PipelineTracer
from anchornet.core.tracker import Submission, SubmissionTracker
from anchornet.crypto.hasher import content_hash
from anchornet.crypto.keys import Keypair
from anchornet.protocol.enums import HashAlgorithm, NonceMode, SubmissionState
from anchornet.protocol.errors import AnchorNetError, InvalidParameter
from anchornet.protocol.models import Batch, ContentHash, Operation

if TYPE_CHECKING:
    from anchornet.ledger.base import Ledger

logger = logging.getLogger(__name__)

DEFAULT_SCHEMA = "{ name, company }"
DEFAULT_LINK_BASE = "https://dhiway.com"
DEFAULT_COUNT = 10000

# ----------------------------------------------------------------------
# PIPELINE MODELS
# ----------------------------------------------------------------------

@dataclass
class PipelineConfig:
    """
    - schema:    type description hashed (with the ledger timestamp) into the root anchor
    - link_base: prefix of the per-item payloads "<link_base>/<timestamp>/<i>"
    - count:     number of linked anchors in the batch
    - max_batch_size: split linked anchors into several batches of at most this size
    - timeout:   per-submission deadline in seconds (None waits forever)
    """
    schema: str = DEFAULT_SCHEMA
    link_base: str = DEFAULT_LINK_BASE
    count: int = DEFAULT_COUNT
    hash_width: int = 256
    algorithm: HashAlgorithm = HashAlgorithm.TWOX
    root_state: SubmissionState = SubmissionState.IN_BLOCK
    batch_state: SubmissionState = SubmissionState.IN_BLOCK
    nonce_mode: NonceMode = NonceMode.AUTOMATIC
    max_batch_size: Optional[int] = None
    timeout: Optional[float] = None

    def validate(self) -> None:
        if self.count < 1:
            raise InvalidParameter(f"count must be at least 1, got {self.count}")
        if self.max_batch_size is not None and self.max_batch_size < 1:
            raise InvalidParameter(f"max_batch_size must be at least 1, got {self.max_batch_size}")
        if self.timeout is not None and self.timeout <= 0:
            raise InvalidParameter(f"timeout must be positive, got {self.timeout}")

@dataclass
class PipelineResult:
    trace_id: str
    timestamp: Optional[int] = None
    root_hash: Optional[ContentHash] = None
    root: Optional[Submission] = None
    batches: List[Submission] = field(default_factory=list)
    linked_count: int = 0
    error: Optional[AnchorNetError] = None
    failed_step: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "traceId": self.trace_id,
            "timestamp": self.timestamp,
            "rootHash": self.root_hash.hex if self.root_hash else None,
            "root": _submission_dict(self.root),
            "batches": [_submission_dict(b) for b in self.batches],
            "linkedCount": self.linked_count,
            "failedStep": self.failed_step,
            "error": str(self.error) if self.error else None,
            "errorCode": self.error.code.value if self.error else None,
        }

def _submission_dict(sub: Optional[Submission]) -> Optional[Dict[str, Any]]:
    if sub is None:
        return None
    return {
        "label": sub.label,
        "state": sub.state.value,
        "nonce": sub.nonce,
        "size": sub.size,
        "txHash": sub.tx_hash,
        "blockHash": sub.block_hash,
    }

# ----------------------------------------------------------------------
# PIPELINE
# ----------------------------------------------------------------------

class AnchorPipeline:
    """
    Root anchor first, then the linked anchors as one batch.

    - The root hash is derived from the schema and the ledger timestamp, so
      every run anchors a fresh root
    - Linked anchors are only built after the root submission is in a block
    - Stops on the first error and returns the partial result
    - Each step is recorded as a span under one traceId
    """

    def __init__(
        self,
        ledger: "Ledger",
        tracker: SubmissionTracker,
        config: Optional[PipelineConfig] = None,
        *,
        builder: Optional[TransactionBuilder] = None,
        aggregator: Optional[BatchAggregator] = None,
        tracer: Optional[PipelineTracer] = None,
    ):
        self._ledger = ledger
        self._tracker = tracker
        self._config = config or PipelineConfig()
        self._builder = builder or TransactionBuilder()
        self._aggregator = aggregator or BatchAggregator()
        self._tracer = tracer or PipelineTracer()

    @property
    def config(self) -> PipelineConfig:
        return self._config

    @property
    def tracer(self) -> PipelineTracer:
        return self._tracer

    # ------------------------------------------------------------------
    def root_hash(self, timestamp: int) -> ContentHash:
        cfg = self._config
        return content_hash(f"{cfg.schema}{timestamp}", cfg.hash_width, cfg.algorithm)

    def link_payload(self, timestamp: int, index: int) -> str:
        return f"{self._config.link_base}/{timestamp}/{index}"

    def build_links(self, root_hash: ContentHash, timestamp: int) -> List[Operation]:
        cfg = self._config
        return [
            self._builder.build_anchor(
                content_hash(self.link_payload(timestamp, i), cfg.hash_width, cfg.algorithm),
                root_hash,
            )
            for i in range(cfg.count)
        ]

    def plan_batches(self, operations: List[Operation]) -> List[Batch]:
        if self._config.max_batch_size is None:
            return [self._aggregator.aggregate(operations)]
        return self._aggregator.partition(operations, self._config.max_batch_size)

    async def _nonce(self, account: Keypair) -> int:
        if self._config.nonce_mode is NonceMode.EXPLICIT:
            return await self._tracker.nonces.reserve(account)
        return AUTOMATIC

    # ------------------------------------------------------------------
    async def run(self, account: Keypair, *, trace_id: Optional[str] = None) -> PipelineResult:
        """
        Execute the pipeline.

        Steps:
            prepare → root → links → batch[0..n]

        Never raises AnchorNetError; failures are returned in the result
        together with the step that failed.
        """
        cfg = self._config
        tracer = self._tracer
        result = PipelineResult(trace_id=trace_id or str(uuid.uuid4()))
        pipeline_started = tracer.start()
        step = "prepare"

        try:
            started = tracer.start()
            cfg.validate()
            self._check_hash_width()

            result.timestamp = await self._ledger.now()
            nonce = await self._tracker.nonces.next_nonce(account)
            logger.info("timestamp & nonce: %d %d", result.timestamp, nonce)
            result.root_hash = self.root_hash(result.timestamp)
            logger.info("Root hash: %s", result.root_hash)
            tracer.record(result.trace_id, step, started, rootHash=result.root_hash.hex, nonce=nonce)

            step = "root"
            started = tracer.start()
            result.root = await self._tracker.submit(
                self._builder.build_anchor(result.root_hash),
                account,
                await self._nonce(account),
                label="root",
            )
            await result.root.await_state(cfg.root_state, cfg.timeout)
            tracer.record(result.trace_id, step, started, blockHash=result.root.block_hash)

            step = "links"
            started = tracer.start()
            links = self.build_links(result.root_hash, result.timestamp)
            result.linked_count = len(links)
            batches = self.plan_batches(links)
            tracer.record(result.trace_id, step, started, count=len(links), batches=len(batches))

            for i, batch in enumerate(batches):
                step = f"batch[{i}]"
                started = tracer.start()
                submission = await self._tracker.submit(
                    batch, account, await self._nonce(account), label=step
                )
                result.batches.append(submission)
                await submission.await_state(cfg.batch_state, cfg.timeout)
                tracer.record(result.trace_id, step, started, size=len(batch), blockHash=submission.block_hash)

            logger.info("DONE: %d linked anchors in %d batch(es)", result.linked_count, len(result.batches))

        except AnchorNetError as e:
            result.error = e
            result.failed_step = step
            logger.error("Pipeline failed at %s: %s", step, e)
            tracer.record(result.trace_id, step, started, error=str(e), errorCode=e.code.value)

        tracer.record(
            result.trace_id,
            PIPELINE_SPAN,
            pipeline_started,
            rootHash=result.root_hash.hex if result.root_hash else None,
            linkedCount=result.linked_count,
            batches=len(result.batches),
            failedStep=result.failed_step,
            ok=result.ok,
        )
        return result

    def _check_hash_width(self) -> None:
        ledger_width = self._ledger.hash_width
        if ledger_width is not None and ledger_width != self._config.hash_width:
            raise InvalidParameter(
                f"hash_width {self._config.hash_width} does not match the ledger's {ledger_width}-bit Hash type"
            )

async def run_pipeline(
    ledger: "Ledger",
    account: Keypair,
    config: Optional[PipelineConfig] = None,
    registry: Optional[MetadataRegistry] = None,
    tracer: Optional[PipelineTracer] = None,
) -> PipelineResult:
    """
    Open the ledger, run the pipeline, and release the ledger on every
    exit path.
    """
    async with ledger:
        tracker = SubmissionTracker(ledger, registry)
        return await AnchorPipeline(ledger, tracker, config, tracer=tracer).run(account)
