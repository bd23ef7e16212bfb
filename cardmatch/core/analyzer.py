"""
Frame scheduler in front of the document validator.

`StreamAnalyzer.submit` is called from the camera thread for every frame. It
decides immediately whether the frame is analyzed or dropped and returns a
`Future` that resolves to an `AnalysisOutcome`. At most one validation runs
at any time; frames never queue up behind it.
"""

import logging
import threading
import time
from concurrent.futures import Future, InvalidStateError
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

from cardmatch.config import AnalyzerConfig
from cardmatch.core.analyzer_state import (
    AnalyzerMode,
    AnalyzerState,
    FrameDecision,
    in_cooldown,
    initial_state,
    on_disable,
    on_enable,
    on_force,
    on_frame,
    on_reset_stats,
    on_result,
)
from cardmatch.core.types import FrameSample, OverlayRect, ValidationError, ValidationResult
from cardmatch.core.workers import AnalysisJob, ValidationWorker

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class AnalysisOutcome:
    """
    What became of one submitted frame.
    """

    decision: FrameDecision
    state: AnalyzerState
    "Analyzer snapshot right after the frame was handled."
    result: Optional[ValidationResult] = None
    "None when the frame was dropped."
    frame: Optional[FrameSample] = None

    @property
    def dropped(self) -> bool:
        return self.decision.dropped

    @property
    def ready_for_text_reading(self) -> bool:
        """
        Gate for the text recognition stage: a positive result and its frame.
        """
        return self.result is not None and self.result.is_valid and self.frame is not None


class StreamAnalyzer:
    """
    Throttles frame analysis and tracks rolling performance.

    Args:
        validator: Object with `validate(frame, overlay, deadline)`, usually a
            `DocumentValidator`
        config (AnalyzerConfig): Scheduling parameters
        clock: Monotonic clock in seconds
    """

    def __init__(self, validator, config: AnalyzerConfig = AnalyzerConfig(),
                 clock: Callable[[], float] = time.monotonic):
        self.validator = validator
        self.config = config
        self.clock = clock

        self._lock = threading.Lock()
        self._state = initial_state(config)
        self._overlay: Optional[OverlayRect] = None
        self._latest: Optional[AnalysisOutcome] = None

        self.stop_event = threading.Event()
        self.worker = ValidationWorker(validator, self.stop_event, self._complete, config, clock)

        logger.info(f"StreamAnalyzer initialized: interval={config.analysis_interval_ms}ms, "
                    f"budget={config.cycle_budget_ms}ms, cooldown={config.success_cooldown_ms}ms")

    # ==================== Lifecycle ====================

    def start(self) -> "StreamAnalyzer":
        if not self.worker.is_alive() and not self.stop_event.is_set():
            self.worker.start()
        return self

    def stop(self) -> None:
        self.stop_event.set()
        if self.worker.is_alive():
            self.worker.join(timeout=self.config.shutdown_timeout)
        logger.info("StreamAnalyzer stopped")

    def __enter__(self) -> "StreamAnalyzer":
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()

    # ==================== Frames ====================

    def _now_ms(self) -> float:
        return self.clock() * 1000.0

    def submit(self, frame: FrameSample, overlay: Optional[OverlayRect] = None) -> "Future[AnalysisOutcome]":
        """
        Offer a frame for analysis.

        Args:
            frame (FrameSample): Latest camera frame
            overlay (OverlayRect): Guide rectangle for this frame; the one set
                with `update_overlay` when omitted

        Returns:
            Future: Resolves to an AnalysisOutcome. Dropped frames resolve
            immediately with `result=None`.
        """
        future: Future = Future()

        if self.stop_event.is_set():
            future.set_result(AnalysisOutcome(FrameDecision.DROP_DISABLED, self.snapshot(), frame=frame))
            return future

        self.start()

        with self._lock:
            self._state, decision = on_frame(self._state, self._now_ms(), self.config)
            state = self._state
            if overlay is None:
                overlay = self._overlay

        if decision.dropped:
            future.set_result(AnalysisOutcome(decision, state, frame=frame))
            return future

        job = AnalysisJob(frame, overlay, future, state.generation)
        if not self.worker.enqueue(job):
            self._complete(job, ValidationResult.failure(ValidationError.ANALYSIS_ERROR, "worker busy"), 0.0)
        return future

    def _complete(self, job: AnalysisJob, result: ValidationResult, elapsed_ms: float) -> None:
        """Fold a finished cycle into the state; runs on the worker thread."""
        with self._lock:
            stale = job.generation != self._state.generation
            self._state = on_result(self._state, result, self._now_ms(), elapsed_ms, self.config, job.generation)
            state = self._state
            outcome = AnalysisOutcome(FrameDecision.ANALYZE, state, result, job.frame)
            if not stale:
                self._latest = outcome

        if stale:
            logger.debug("Discarding result of a cycle started before analysis was re-enabled")
            self._resolve(job.future, outcome)
            return

        if result.is_valid:
            logger.info(f"Document validated (confidence {result.confidence:.2f}), "
                        f"cooling down for {self.config.success_cooldown_ms}ms")
        else:
            logger.debug(f"Analysis failed: {result.error_message} "
                         f"({state.consecutive_failures} in a row, interval {state.current_interval_ms:.0f}ms)")

        every = self.config.stats_log_every
        if every > 0 and state.total_count > 0 and state.total_count % every == 0:
            self._log_performance(state)

        self._resolve(job.future, outcome)

    @staticmethod
    def _resolve(future: Future, outcome: AnalysisOutcome) -> None:
        # the caller may cancel the future while the cycle runs
        try:
            future.set_result(outcome)
        except InvalidStateError:
            logger.debug("Analysis result arrived for a cancelled request")

    def _log_performance(self, state: AnalyzerState) -> None:
        logger.info(f"Analysis performance: {state.successful_count}/{state.total_count} successful "
                    f"({state.success_rate:.0%}), avg {state.average_processing_time_ms:.0f}ms, "
                    f"interval {state.current_interval_ms:.0f}ms")

    # ==================== Controls ====================

    def update_overlay(self, overlay: Optional[OverlayRect]) -> None:
        with self._lock:
            self._overlay = overlay

    def disable(self) -> None:
        with self._lock:
            self._state = on_disable(self._state)
        logger.info("Analysis disabled")

    def enable(self) -> None:
        """Re-enable analysis; clears every counter."""
        with self._lock:
            self._state = on_enable(self._state, self.config)
        logger.info("Analysis enabled")

    def force_analysis(self) -> None:
        """Let the next submitted frame skip the throttle interval and cooldown."""
        with self._lock:
            self._state = on_force(self._state)
        logger.debug("Next frame will be analyzed immediately")

    def reset_performance_stats(self) -> None:
        with self._lock:
            self._state = on_reset_stats(self._state)
        logger.info("Performance statistics reset")

    # ==================== Diagnostics ====================

    def snapshot(self) -> AnalyzerState:
        with self._lock:
            return self._state

    @property
    def latest_outcome(self) -> Optional[AnalysisOutcome]:
        with self._lock:
            return self._latest

    def performance_stats(self) -> Dict[str, Any]:
        state = self.snapshot()
        return {
            "total_analyses": state.total_count,
            "successful_analyses": state.successful_count,
            "success_rate": state.success_rate,
            "average_processing_time_ms": state.average_processing_time_ms,
            "last_processing_time_ms": state.last_processing_time_ms,
            "current_interval_ms": state.current_interval_ms,
            "consecutive_failures": state.consecutive_failures,
        }

    def analysis_status(self) -> Dict[str, Any]:
        now = self._now_ms()
        state = self.snapshot()
        cooling = in_cooldown(state, now, self.config)
        cooldown_remaining = 0.0
        if cooling:
            cooldown_remaining = self.config.success_cooldown_ms - (now - state.last_success_timestamp)
        since_last = None
        if state.last_analysis_start is not None:
            since_last = now - state.last_analysis_start
        return {
            "mode": state.mode.value,
            "enabled": state.mode is not AnalyzerMode.DISABLED,
            "analyzing": state.in_flight,
            "in_cooldown": cooling,
            "cooldown_remaining_ms": cooldown_remaining,
            "time_since_last_analysis_ms": since_last,
            "current_interval_ms": state.current_interval_ms,
        }
