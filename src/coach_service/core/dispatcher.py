"""Retry/fallback controller for generation requests.

dispatch() walks the model candidates in order, retrying transient
failures on the same model with exponential backoff and abandoning a model
at once on non-retryable failures. dispatch_with_key_rotation() wraps it
in an outer loop over the KeyPool for rate-limit and quota exhaustion.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Sequence, TypeVar

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential,
)

from coach_service.core.errors import ErrorKind, ExhaustedError
from coach_service.core.key_pool import KeyPool
from coach_service.core.retry import RetryPolicy, classify_error, exhaustion_kind

logger = logging.getLogger(__name__)

T = TypeVar("T")

# A different key only helps when the key itself hit its limit
ROTATE_ON = frozenset({ErrorKind.PROVIDER_RATE_LIMITED, ErrorKind.QUOTA_EXCEEDED})


async def _backoff_sleep(seconds: float) -> None:
    await asyncio.sleep(seconds)


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, Exception) and classify_error(error).retryable


def _retrying(policy: RetryPolicy) -> AsyncRetrying:
    """Attempt schedule for one model: initial delay, doubled after each retry."""
    return AsyncRetrying(
        stop=stop_after_attempt(policy.max_attempts),
        wait=wait_exponential(multiplier=policy.initial_delay_ms / 1000),
        retry=retry_if_exception(_is_retryable),
        before_sleep=before_sleep_log(logger, logging.DEBUG),
        sleep=_backoff_sleep,
        reraise=True,
    )


async def dispatch(
    make_request: Callable[[str], Awaitable[T]],
    policy: RetryPolicy,
    candidates: Sequence[str],
) -> T:
    """
    Execute a request against each model candidate until one succeeds.

    At most len(candidates) * (policy.retries + 1) attempts are made. Each
    attempt is bounded by policy.per_attempt_timeout_ms; the timed-out
    request is cancelled and treated like a transient provider error.

    Args:
        make_request: Coroutine factory taking a model identifier
        policy: Retry/backoff/timeout policy
        candidates: Ordered model identifiers

    Returns:
        The first successful response

    Raises:
        ExhaustedError: If every candidate failed; carries the last error
        ValueError: If candidates is empty
    """
    if not candidates:
        raise ValueError("No model candidates to dispatch to")

    last_error: Optional[BaseException] = None
    last_kind = ErrorKind.UNKNOWN
    attempts = 0

    for model in candidates:
        try:
            async for attempt in _retrying(policy):
                with attempt:
                    attempts += 1
                    return await asyncio.wait_for(
                        make_request(model), timeout=policy.per_attempt_timeout_s
                    )
        except asyncio.CancelledError:
            raise
        except Exception as e:
            last_error = e
            last_kind = classify_error(e).kind

        logger.info(f"Model {model} abandoned after {last_kind.value}")

    kind = exhaustion_kind(last_kind)
    logger.warning(f"All {len(candidates)} model(s) exhausted after {attempts} attempts: {kind.value}")
    raise ExhaustedError(kind, cause_kind=last_kind, last_error=last_error, attempts=attempts)


async def dispatch_with_key_rotation(
    make_request: Callable[[str, str], Awaitable[T]],
    policy: RetryPolicy,
    candidates: Sequence[str],
    key_pool: KeyPool,
) -> T:
    """
    Run dispatch() once per key until one succeeds.

    A key whose last failure was a rate limit or quota error is
    soft-marked and the next key re-runs the whole candidate list. Any
    other exhaustion (overload and timeouts included) is final, since
    another key would not change it.

    Args:
        make_request: Coroutine factory taking (model, api_key)
        policy: Retry/backoff/timeout policy
        candidates: Ordered model identifiers
        key_pool: Credentials to rotate through

    Returns:
        The first successful response

    Raises:
        ExhaustedError: If every key was exhausted
        NoCredentialsError: If the pool is empty
    """
    keys = key_pool.ordered()
    last: Optional[ExhaustedError] = None

    for key in keys:
        try:
            result = await dispatch(lambda model: make_request(model, key), policy, candidates)
        except ExhaustedError as e:
            if e.cause_kind not in ROTATE_ON:
                raise
            key_pool.mark_exhausted(key)
            last = e
            continue
        key_pool.mark_healthy(key)
        return result

    logger.warning(f"All {len(keys)} generation key(s) exhausted")
    raise last
