from .core.orchestrator import AnchorPipeline, PipelineConfig, PipelineResult, run_pipeline
from .core.tracker import Submission, SubmissionTracker
from .core.registry import MetadataRegistry
from .crypto.hasher import content_hash
from .crypto.keys import Keypair
from .ledger import Ledger, InMemoryLedger, WebSocketLedger
from .protocol import ContentHash, Operation, Batch, SubmissionState, AnchorNetError

__version__ = "0.1.0"

__all__ = [
    "AnchorPipeline",
    "PipelineConfig",
    "PipelineResult",
    "run_pipeline",
    "Submission",
    "SubmissionTracker",
    "MetadataRegistry",
    "content_hash",
    "Keypair",
    "Ledger",
    "InMemoryLedger",
    "WebSocketLedger",
    "ContentHash",
    "Operation",
    "Batch",
    "SubmissionState",
    "AnchorNetError",
]
