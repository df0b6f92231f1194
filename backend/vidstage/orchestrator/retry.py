"""Backoff policy for retry-by-requeue.

The attempts counter lives on the durable ledger row, so the delay is computed
from it directly instead of wrapping the call in a tenacity ``@retry``. The
tenacity wait strategies still define the curve.
"""

from tenacity import RetryCallState, wait_exponential, wait_random
from tenacity.wait import wait_base

from vidstage.config import PipelineConfig


def backoff_strategy(config: PipelineConfig) -> wait_base:
    """Exponential backoff with additive jitter."""
    return wait_exponential(
        multiplier=config.retry_base_delay, max=config.retry_max_delay
    ) + wait_random(0, config.retry_jitter)


def retry_delay(attempts: int, config: PipelineConfig) -> float:
    """Seconds to wait before re-running a job that has failed ``attempts`` times.

    Examples:
        >>> retry_delay(1, PipelineConfig(retry_base_delay=2, retry_jitter=0))
        2.0
        >>> retry_delay(3, PipelineConfig(retry_base_delay=2, retry_jitter=0))
        8.0
    """
    state = RetryCallState(retry_object=None, fn=None, args=(), kwargs={})
    state.attempt_number = max(1, attempts)
    return float(backoff_strategy(config)(state))


def should_retry(attempts: int, config: PipelineConfig) -> bool:
    """True while attempts remain below the cap."""
    return attempts < config.transcription_max_attempts
