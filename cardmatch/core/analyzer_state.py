"""
Stream analyzer state and its transitions.

`AnalyzerState` is an immutable snapshot. Every event is a plain function
returning the next state, so the scheduling rules can be exercised without
threads, cameras or clocks. Times are milliseconds on a monotonic clock.
"""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Tuple

from cardmatch.config import AnalyzerConfig
from cardmatch.core.types import ValidationResult


class AnalyzerMode(Enum):
    IDLE = "Idle"
    THROTTLED = "Throttled"
    ANALYZING = "Analyzing"
    SUCCESS_COOLDOWN = "SuccessCooldown"
    DISABLED = "Disabled"


class FrameDecision(Enum):
    """What happened to a submitted frame."""

    ANALYZE = "analyze"
    DROP_DISABLED = "disabled"
    DROP_COOLDOWN = "cooldown"
    DROP_BUSY = "busy"
    DROP_THROTTLED = "throttled"

    @property
    def dropped(self) -> bool:
        return self is not FrameDecision.ANALYZE


@dataclass(frozen=True)
class AnalyzerState:
    mode: AnalyzerMode = AnalyzerMode.IDLE
    in_flight: bool = False
    "Mutual-exclusion guard: a validation is running. Survives disable/enable."
    generation: int = 0
    "Bumped on every re-enable; results started in an older generation are not counted."
    consecutive_failures: int = 0
    consecutive_successes: int = 0
    successful_count: int = 0
    total_count: int = 0
    current_interval_ms: float = 200.0
    last_success_timestamp: Optional[float] = None
    last_analysis_start: Optional[float] = None
    average_processing_time_ms: float = 0.0
    last_processing_time_ms: float = 0.0

    @property
    def success_rate(self) -> float:
        if self.total_count == 0:
            return 0.0
        return self.successful_count / self.total_count


def initial_state(config: AnalyzerConfig = AnalyzerConfig()) -> AnalyzerState:
    return AnalyzerState(current_interval_ms=_clamp_interval(config.analysis_interval_ms, config))


def _clamp_interval(interval_ms: float, config: AnalyzerConfig) -> float:
    return float(min(max(interval_ms, config.min_interval_ms), config.max_interval_ms))


def in_cooldown(state: AnalyzerState, now_ms: float, config: AnalyzerConfig) -> bool:
    return (
        state.mode is AnalyzerMode.SUCCESS_COOLDOWN
        and state.last_success_timestamp is not None
        and now_ms - state.last_success_timestamp < config.success_cooldown_ms
    )


def on_frame(state: AnalyzerState, now_ms: float,
             config: AnalyzerConfig) -> Tuple[AnalyzerState, FrameDecision]:
    """
    Decide whether a newly arrived frame is analyzed.

    Drops, in order: disabled, inside the success cooldown, a validation in
    flight, or less than the current interval since the last analysis start.
    Accepting a frame sets the in-flight guard.
    """
    if state.mode is AnalyzerMode.DISABLED:
        return state, FrameDecision.DROP_DISABLED

    if state.mode is AnalyzerMode.SUCCESS_COOLDOWN:
        if in_cooldown(state, now_ms, config):
            return state, FrameDecision.DROP_COOLDOWN
        state = replace(state, mode=AnalyzerMode.IDLE)

    if state.in_flight:
        return state, FrameDecision.DROP_BUSY

    if (state.last_analysis_start is not None
            and now_ms - state.last_analysis_start < state.current_interval_ms):
        return replace(state, mode=AnalyzerMode.THROTTLED), FrameDecision.DROP_THROTTLED

    return replace(
        state,
        mode=AnalyzerMode.ANALYZING,
        in_flight=True,
        last_analysis_start=now_ms,
    ), FrameDecision.ANALYZE


def on_result(state: AnalyzerState, result: ValidationResult, now_ms: float,
              elapsed_ms: float, config: AnalyzerConfig,
              generation: Optional[int] = None) -> AnalyzerState:
    """
    Fold a finished cycle into the state and release the in-flight guard.

    Every invalid result (geometry, timeout, internal error) counts as a
    failure. The interval grows after each run of `failure_streak_for_backoff`
    failures and shrinks after each run of `success_streak_for_speedup`
    successes, within [min_interval_ms, max_interval_ms].

    A cycle started before the last re-enable (`generation` older than the
    state's) only releases the guard.
    """
    if generation is not None and generation != state.generation:
        return replace(state, in_flight=False)

    total = state.total_count + 1
    average = state.average_processing_time_ms + (elapsed_ms - state.average_processing_time_ms) / total
    interval = state.current_interval_ms

    if result.is_valid:
        failures = 0
        successes = state.consecutive_successes + 1
        successful = state.successful_count + 1
        last_success = now_ms
        if successes % config.success_streak_for_speedup == 0:
            interval = _clamp_interval(interval * config.speedup_factor, config)
        mode = AnalyzerMode.SUCCESS_COOLDOWN
    else:
        failures = state.consecutive_failures + 1
        successes = 0
        successful = state.successful_count
        last_success = state.last_success_timestamp
        if failures % config.failure_streak_for_backoff == 0:
            interval = _clamp_interval(interval * config.backoff_factor, config)
        mode = AnalyzerMode.IDLE

    if state.mode is AnalyzerMode.DISABLED:
        mode = AnalyzerMode.DISABLED

    return replace(
        state,
        mode=mode,
        in_flight=False,
        consecutive_failures=failures,
        consecutive_successes=successes,
        successful_count=successful,
        total_count=total,
        current_interval_ms=interval,
        last_success_timestamp=last_success,
        average_processing_time_ms=average,
        last_processing_time_ms=float(elapsed_ms),
    )


def on_disable(state: AnalyzerState) -> AnalyzerState:
    return replace(state, mode=AnalyzerMode.DISABLED)


def on_enable(state: AnalyzerState, config: AnalyzerConfig) -> AnalyzerState:
    """
    Back to Idle with every counter cleared. A validation still in flight
    keeps its guard until it completes, but its result is no longer counted.
    """
    return replace(initial_state(config), in_flight=state.in_flight, generation=state.generation + 1)


def on_force(state: AnalyzerState) -> AnalyzerState:
    """
    Let the next frame through regardless of throttle interval and cooldown.
    Disabled and in-flight still win.
    """
    if state.mode is AnalyzerMode.DISABLED:
        return state
    mode = AnalyzerMode.IDLE if state.mode is AnalyzerMode.SUCCESS_COOLDOWN else state.mode
    return replace(state, mode=mode, last_analysis_start=None)


def on_reset_stats(state: AnalyzerState) -> AnalyzerState:
    return replace(
        state,
        successful_count=0,
        total_count=0,
        average_processing_time_ms=0.0,
        last_processing_time_ms=0.0,
    )
