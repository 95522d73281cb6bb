# batchwatch/errors.py
"""
Error types raised by batchwatch.

WatchError
  ValidationError        bad input, raised before any AWS call
  RemoteServiceError     SNS / EventBridge rejected or never answered a call
    PartialWiringError   target registered on the rule, publish permission missing
"""

from typing import Optional

from botocore.exceptions import (
    BotoCoreError,
    ClientError,
    ConnectionError as BotoConnectionError,
    ConnectTimeoutError,
    EndpointConnectionError,
    ReadTimeoutError,
)


# Codes worth retrying with backoff. Everything else is final.
RETRYABLE_CODES = {
    "Throttling",
    "ThrottlingException",
    "ThrottledException",
    "TooManyRequestsException",
    "RequestLimitExceeded",
    "KMSThrottlingException",
    "InternalError",
    "InternalFailure",
    "InternalException",
    "ServiceUnavailable",
    "ServiceUnavailableException",
    "ConcurrentModificationException",
}


class WatchError(Exception):
    """Base class for everything batchwatch raises."""


class ValidationError(WatchError, ValueError):
    """Malformed or missing input. Never retried."""


class RemoteServiceError(WatchError):
    def __init__(self, operation: str, code: str, message: str, retryable: bool = False):
        self.operation = operation
        self.code = code
        self.message = message
        self.retryable = retryable
        super().__init__(f"{operation} failed ({code}): {message}")


class PartialWiringError(RemoteServiceError):
    """
    The rule target exists but EventBridge is not allowed to publish to the topic,
    so notifications will never arrive. Retry only the permission step
    (TargetBinder.grant_publish_permission) or re-run bind().
    """

    def __init__(self, rule_name: str, topic_arn: str, target_id: str, cause: RemoteServiceError):
        self.rule_name = rule_name
        self.topic_arn = topic_arn
        self.target_id = target_id
        self.cause = cause
        super().__init__(
            cause.operation,
            cause.code,
            f"target {target_id} registered on rule {rule_name} but publish permission "
            f"on {topic_arn} was not granted: {cause.message}",
            retryable=cause.retryable,
        )


def error_code(err: ClientError) -> str:
    return err.response.get("Error", {}).get("Code", "")


def from_client_error(operation: str, err: ClientError) -> RemoteServiceError:
    code = error_code(err) or "Unknown"
    message = err.response.get("Error", {}).get("Message", "") or str(err)
    return RemoteServiceError(operation, code, message, retryable=code in RETRYABLE_CODES)


def from_botocore_error(operation: str, err: Exception) -> Optional[RemoteServiceError]:
    """
    Map a botocore failure to RemoteServiceError, or None if err isn't from botocore.

    Local botocore failures (missing credentials or region, bad parameters) keep
    their class name as the code and are never retryable.
    """
    if isinstance(err, ClientError):
        return from_client_error(operation, err)
    if isinstance(err, (ConnectTimeoutError, ReadTimeoutError)):
        return RemoteServiceError(operation, "Timeout", str(err), retryable=True)
    if isinstance(err, (EndpointConnectionError, BotoConnectionError)):
        return RemoteServiceError(operation, "ConnectionError", str(err), retryable=True)
    if isinstance(err, BotoCoreError):
        return RemoteServiceError(operation, type(err).__name__, str(err))
    return None
