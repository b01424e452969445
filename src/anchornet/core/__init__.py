from .registry import MetadataRegistry, CallSpec, DEFAULT_REGISTRY
from .nonce import NonceSequencer, AUTOMATIC
from .builder import TransactionBuilder, ROOT_ANCHOR, LINKED_ANCHOR
from .batch import BatchAggregator, BATCH_TARGET
from .tracker import Submission, SubmissionTracker
from .tracing import PipelineTracer, TraceSpan
from .orchestrator import AnchorPipeline, PipelineConfig, PipelineResult, run_pipeline

__all__ = [
    "MetadataRegistry",
    "CallSpec",
    "DEFAULT_REGISTRY",
    "NonceSequencer",
    "AUTOMATIC",
    "TransactionBuilder",
    "ROOT_ANCHOR",
    "LINKED_ANCHOR",
    "BatchAggregator",
    "BATCH_TARGET",
    "Submission",
    "SubmissionTracker",
    "PipelineTracer",
    "TraceSpan",
    "AnchorPipeline",
    "PipelineConfig",
    "PipelineResult",
    "run_pipeline",
]
