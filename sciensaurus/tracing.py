"""Request tracing and LLM call tracing.

A ``Tracer`` is passed into each pipeline stage instead of logging through
ambient globals. Every ``Trace`` keeps its events in memory (so tests can
assert on them), mirrors them to the ``sciensaurus`` logger, and optionally
writes a JSON record to ``TRACE_LOG_DIR`` when ``ENABLE_AI_TRACING`` is on.
"""

import json
import logging
import os
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from sciensaurus.config import ENABLE_AI_TRACING, TRACE_LOG_DIR

logger = logging.getLogger(__name__)

T = TypeVar("T")

_PREVIEW_CHARS = 100


def _preview(text: Optional[str]) -> Optional[str]:
    if text is None:
        return None
    return text[:_PREVIEW_CHARS] + ("..." if len(text) > _PREVIEW_CHARS else "")


def _stamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace(":", "-").replace(".", "-")


@dataclass
class TraceEvent:
    name: str
    elapsed_ms: float
    data: Dict[str, Any] = field(default_factory=dict)


class Trace:
    """One traced operation (typically one API request)."""

    def __init__(self, name: str, write_files: bool, log_dir: str):
        self.name = name
        self.id = f"{name}-{uuid.uuid4().hex[:10]}"
        self.events: List[TraceEvent] = []
        self.success: Optional[bool] = None
        self.error: Optional[str] = None
        self._start = time.perf_counter()
        self._write_files = write_files
        self._log_dir = log_dir
        logger.info(f"[Trace {self.id}] Started")

    def add_event(self, name: str, **data: Any) -> None:
        elapsed = (time.perf_counter() - self._start) * 1000
        self.events.append(TraceEvent(name=name, elapsed_ms=elapsed, data=data))
        logger.info(f"[Trace {self.id}] Event: {name}")

    def event_names(self) -> List[str]:
        return [e.name for e in self.events]

    def end(self, success: Optional[bool] = None, error: Optional[str] = None) -> None:
        duration = (time.perf_counter() - self._start) * 1000
        self.error = error
        self.success = success if success is not None else error is None
        if self.success:
            logger.info(f"[Trace {self.id}] Completed successfully in {duration:.2f}ms")
        else:
            logger.error(f"[Trace {self.id}] Failed in {duration:.2f}ms: {error}")

        if self._write_files:
            record = {
                "id": self.id,
                "name": self.name,
                "duration": duration,
                "success": self.success,
                "error": error,
                "events": [e.__dict__ for e in self.events],
            }
            path = os.path.join(self._log_dir, f"trace-{_stamp()}-{self.id}.json")
            try:
                with open(path, "w", encoding="utf-8") as f:
                    json.dump(record, f, indent=2, default=str)
            except OSError as e:
                logger.error(f"Error saving trace data: {e}")


class Tracer:
    """Factory for ``Trace`` objects; share one per process or per test."""

    def __init__(self, write_files: bool = ENABLE_AI_TRACING, log_dir: str = TRACE_LOG_DIR):
        self.write_files = write_files
        self.log_dir = log_dir
        if write_files:
            os.makedirs(log_dir, exist_ok=True)

    def start_trace(self, name: str) -> Trace:
        return Trace(name, self.write_files, self.log_dir)

    async def trace_ai_call(
        self,
        name: str,
        model: str,
        messages: List[Dict[str, str]],
        call: Callable[[], Awaitable[T]],
        trace: Optional[Trace] = None,
        **extra: Any,
    ) -> T:
        """Run an LLM call, logging request, completion and failure.

        Message contents are truncated before they are logged or written.
        When ``trace`` is given the outcome is also added to it as an event.
        Exceptions from ``call`` are re-raised unchanged.
        """
        call_id = uuid.uuid4().hex[:12]
        details = {
            "name": name,
            "model": model,
            "messages": [
                {"role": m["role"], "content": _preview(m.get("content"))} for m in messages
            ],
            **extra,
        }
        logger.info(f"[AI Call {call_id}] Starting: {name} with model {model}")
        self._write_ai_record("req", name, call_id, {"type": "ai_call_request", "details": details})

        start = time.perf_counter()
        try:
            result = await call()
        except Exception as e:
            duration = (time.perf_counter() - start) * 1000
            logger.error(f"[AI Call {call_id}] Error: {name} failed after {duration:.2f}ms: {e}")
            self._write_ai_record("err", name, call_id, {
                "type": "ai_call_error",
                "duration": duration,
                "details": details,
                "success": False,
                "error": {"name": type(e).__name__, "message": str(e)},
            })
            if trace:
                trace.add_event("ai-call-failed", call=name, model=model, error=str(e))
            raise

        duration = (time.perf_counter() - start) * 1000
        logger.info(f"[AI Call {call_id}] Completed: {name} in {duration:.2f}ms")
        self._write_ai_record("res", name, call_id, {
            "type": "ai_call_response",
            "duration": duration,
            "details": details,
            "success": True,
            "resultSummary": f"Result of type {type(result).__name__}",
        })
        if trace:
            trace.add_event("ai-call-completed", call=name, model=model, duration_ms=round(duration, 2))
        return result

    def _write_ai_record(self, prefix: str, name: str, call_id: str, record: dict) -> None:
        if not self.write_files:
            return
        record = {"id": call_id, "timestamp": datetime.now(timezone.utc).isoformat(), **record}
        path = os.path.join(self.log_dir, f"{prefix}-{_stamp()}-{name}-{call_id}.json")
        try:
            with open(path, "w", encoding="utf-8") as f:
                json.dump(record, f, indent=2, default=str)
        except OSError as e:
            logger.error(f"Error saving AI trace: {e}")
