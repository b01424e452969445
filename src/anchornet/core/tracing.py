"""
Per-run step spans.

The pipeline records one span per step ("prepare", "root", "links",
"batch[i]") and a closing "pipeline" span, all under the run's trace id.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from anchornet.utils.timestamps import monotonic_ms, now_iso

PIPELINE_SPAN = "pipeline"

Started = Tuple[str, int]


@dataclass
class TraceSpan:
    trace_id: str
    name: str
    start: str
    end: str
    latency_ms: int = 0
    attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def step(self) -> Optional[str]:
        return None if self.name == PIPELINE_SPAN else self.name

    @property
    def error(self) -> Optional[str]:
        return self.attributes.get("error")


class PipelineTracer:
    """
    Keeps the spans of every run in memory.

    Usage:
        tracer = PipelineTracer()
        started = tracer.start()
        ...
        tracer.record(trace_id, "root", started, blockHash=block)
    """

    def __init__(self) -> None:
        self._spans: List[TraceSpan] = []

    @staticmethod
    def start() -> Started:
        return now_iso(), monotonic_ms()

    def record(self, trace_id: str, name: str, started: Started, **attributes: Any) -> TraceSpan:
        start, t0 = started
        span = TraceSpan(trace_id, name, start, now_iso(), monotonic_ms() - t0, attributes)
        self._spans.append(span)
        return span

    def spans(self, trace_id: Optional[str] = None) -> List[TraceSpan]:
        if trace_id is None:
            return list(self._spans)
        return [s for s in self._spans if s.trace_id == trace_id]

    def failed_step(self, trace_id: str) -> Optional[str]:
        for span in self.spans(trace_id):
            if span.error is not None and span.step is not None:
                return span.step
        return None

    def clear(self) -> None:
        self._spans.clear()
