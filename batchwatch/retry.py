import logging
import time

from botocore.exceptions import BotoCoreError, ClientError

from .errors import RemoteServiceError, from_botocore_error

logger = logging.getLogger(__name__)


def call_with_retry(fn, operation: str, *, max_attempts: int = 1, sleep_sec: float = 2.0):
    """
    Run one AWS call, turning botocore failures into RemoteServiceError.

    Only retryable errors (throttling, timeouts, connection drops) are retried,
    and only when the caller opted in with max_attempts > 1. Backoff is linear.
    """
    attempts = max(1, int(max_attempts))
    for attempt in range(1, attempts + 1):
        try:
            return fn()
        except (ClientError, BotoCoreError) as e:
            err = from_botocore_error(operation, e)
            if err is None:
                raise
            if err.retryable and attempt < attempts:
                logger.warning(
                    "%s attempt %d/%d failed (%s), retrying in %.1fs",
                    operation, attempt, attempts, err.code, sleep_sec * attempt,
                )
                time.sleep(sleep_sec * attempt)
                continue
            logger.error("%s failed: %s", operation, err)
            raise err from e
    # unreachable, the loop either returns or raises
    raise RemoteServiceError(operation, "Unknown", "no attempt made")
