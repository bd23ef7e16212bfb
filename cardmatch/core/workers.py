"""
Background worker thread for document validation.

The worker runs the CPU-bound validation off the frame-delivery path. The
analyzer hands it at most one job at a time; the queue exists only to pass
that job across threads.
"""

import logging
import queue
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Callable, Optional

from cardmatch.config import AnalyzerConfig
from cardmatch.core.errors import Deadline
from cardmatch.core.types import FrameSample, OverlayRect, ValidationError, ValidationResult

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class AnalysisJob:
    """One accepted frame waiting for its validation."""

    frame: FrameSample
    overlay: Optional[OverlayRect] = None
    future: Future = field(default_factory=Future)
    generation: int = 0
    "Analyzer generation the job was accepted in."


class ValidationWorker(threading.Thread):
    """
    Background thread running `validator.validate` for queued jobs.

    Every job ends in exactly one `on_complete(job, result, elapsed_ms)` call,
    whatever happens inside the validator. Results that come back after the
    cycle budget are replaced with a `Timeout` result.
    """

    def __init__(self, validator, stop_event: threading.Event,
                 on_complete: Callable[[AnalysisJob, ValidationResult, float], None],
                 config: AnalyzerConfig = AnalyzerConfig(),
                 clock: Callable[[], float] = time.monotonic):
        """
        Initialize the validation worker.

        Args:
            validator: Object with `validate(frame, overlay, deadline)`
            stop_event (threading.Event): Event to signal shutdown
            on_complete: Called from this thread when a job finishes
            config (AnalyzerConfig): Cycle budget and queue timeout
            clock: Monotonic clock in seconds
        """
        super().__init__(daemon=True, name="ValidationWorker")

        self.validator = validator
        self.stop_event = stop_event
        self.on_complete = on_complete
        self.config = config
        self.clock = clock
        self.job_queue = queue.Queue(maxsize=1)

        logger.info("ValidationWorker initialized")

    def enqueue(self, job: AnalysisJob) -> bool:
        """
        Hand a job to the worker (non-blocking).

        Returns:
            bool: False if a job is already waiting
        """
        try:
            self.job_queue.put_nowait(job)
            return True
        except queue.Full:
            logger.warning("Validation queue full, dropping frame")
            return False

    def run(self):
        """Main worker loop - validates queued frames until stopped."""
        logger.info("ValidationWorker started")

        while not self.stop_event.is_set():
            try:
                job = self.job_queue.get(timeout=self.config.queue_get_timeout)
            except queue.Empty:
                continue

            try:
                self.process(job)
            except Exception as e:
                logger.error(f"Error reporting validation result: {e}", exc_info=True)
            finally:
                self.job_queue.task_done()

        logger.info("ValidationWorker stopped")

    def process(self, job: AnalysisJob) -> None:
        """
        Validate one job under the cycle budget and report it.
        """
        deadline = Deadline(self.config.cycle_budget_ms, clock=self.clock)
        result = None
        try:
            result = self.validator.validate(job.frame, job.overlay, deadline)
            if deadline.expired and result.reason is not ValidationError.TIMEOUT:
                elapsed = deadline.elapsed_ms()
                logger.warning(f"Validation exceeded budget ({elapsed:.0f}ms > "
                               f"{self.config.cycle_budget_ms}ms), discarding result")
                result = ValidationResult.failure(
                    ValidationError.TIMEOUT,
                    f"cycle took {elapsed:.0f}ms",
                    processing_time_ms=result.processing_time_ms,
                )
        except Exception as e:
            logger.error(f"Error in validation worker: {e}", exc_info=True)
            result = ValidationResult.failure(ValidationError.ANALYSIS_ERROR, str(e))
        finally:
            if result is None:
                result = ValidationResult.failure(ValidationError.ANALYSIS_ERROR, "cycle aborted")
            self.on_complete(job, result, deadline.elapsed_ms())
