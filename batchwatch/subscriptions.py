# batchwatch/subscriptions.py
"""
SNS side of the watcher: make sure the alerts topic exists and that an endpoint
is subscribed to it exactly once.

Email subscriptions stay "pending confirmation" until the recipient clicks the
link SNS sends; that is a normal result here, we never wait for it.
"""

import hashlib
import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .errors import RemoteServiceError, ValidationError
from .retry import call_with_retry

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PENDING_ARNS = {"pendingconfirmation", "pending confirmation"}


class Protocol(str, Enum):
    EMAIL = "email"
    EMAIL_JSON = "email-json"
    SMS = "sms"
    SQS = "sqs"
    LAMBDA = "lambda"
    HTTP = "http"
    HTTPS = "https"
    FIREHOSE = "firehose"
    APPLICATION = "application"


class SubscriptionState(str, Enum):
    CONFIRMED = "Confirmed"
    PENDING_CONFIRMATION = "PendingConfirmation"


@dataclass(frozen=True)
class SubscriptionResult:
    topic_arn: str
    subscription_arn: Optional[str]
    state: SubscriptionState
    # False when an existing subscription was reused
    created: bool = True


def topic_name_for(name: str) -> str:
    # SNS topic names: <= 256 chars, letters/numbers/-/_ only
    safe = "".join(ch if ch.isalnum() or ch in "-_" else "-" for ch in name)
    if safe == name and len(safe) <= 256:
        return safe
    h = hashlib.sha1(name.encode("utf-8")).hexdigest()[:8]
    return f"{safe[:80]}-{h}"


def _parse_protocol(protocol) -> Protocol:
    if protocol is None:
        return Protocol.EMAIL
    if isinstance(protocol, Protocol):
        return protocol
    try:
        return Protocol(str(protocol).strip().lower())
    except ValueError:
        raise ValidationError(f"Unsupported SNS protocol: {protocol!r}") from None


def validate_endpoint(endpoint: str, protocol: Protocol) -> str:
    if not isinstance(endpoint, str) or not endpoint.strip():
        raise ValidationError("Subscription endpoint must be a non-empty string.")
    endpoint = endpoint.strip()
    if protocol in (Protocol.EMAIL, Protocol.EMAIL_JSON) and not _EMAIL_RE.match(endpoint):
        raise ValidationError(f"Not a valid email address: {endpoint!r}")
    if protocol in (Protocol.HTTP, Protocol.HTTPS) and not endpoint.lower().startswith(f"{protocol.value}://"):
        raise ValidationError(f"{protocol.value} endpoint must start with {protocol.value}://, got {endpoint!r}")
    if protocol in (Protocol.SQS, Protocol.LAMBDA, Protocol.FIREHOSE, Protocol.APPLICATION) and not endpoint.startswith("arn:"):
        raise ValidationError(f"{protocol.value} endpoint must be an ARN, got {endpoint!r}")
    return endpoint


def _state_of(subscription_arn: Optional[str]) -> SubscriptionState:
    if not subscription_arn or subscription_arn.strip().lower() in _PENDING_ARNS:
        return SubscriptionState.PENDING_CONFIRMATION
    return SubscriptionState.CONFIRMED


def _result(topic_arn: str, subscription_arn: Optional[str], created: bool = True) -> SubscriptionResult:
    state = _state_of(subscription_arn)
    # pending subscriptions have no usable ARN yet
    if state is SubscriptionState.PENDING_CONFIRMATION:
        subscription_arn = None
    return SubscriptionResult(topic_arn, subscription_arn, state, created)


class SubscriptionCoordinator:
    def __init__(self, sns, topic_name: str, *, max_attempts: int = 1, retry_sleep_sec: float = 2.0):
        self.sns = sns
        self.topic_name = topic_name
        self.max_attempts = max_attempts
        self.retry_sleep_sec = retry_sleep_sec

    def _call(self, operation: str, fn):
        return call_with_retry(fn, operation, max_attempts=self.max_attempts, sleep_sec=self.retry_sleep_sec)

    def ensure_topic(self, topic_name: Optional[str] = None) -> str:
        # create_topic is idempotent by name and returns the existing ARN
        name = topic_name_for(topic_name or self.topic_name)
        resp = self._call("CreateTopic", lambda: self.sns.create_topic(Name=name))
        topic_arn = resp["TopicArn"]
        logger.info("SNS topic ready: %s", topic_arn)
        return topic_arn

    def find_subscription(self, topic_arn: str, endpoint: str, protocol: Protocol) -> Optional[dict]:
        token = None
        while True:
            kwargs = {"TopicArn": topic_arn}
            if token:
                kwargs["NextToken"] = token
            resp = self._call(
                "ListSubscriptionsByTopic",
                lambda: self.sns.list_subscriptions_by_topic(**kwargs),
            )
            for s in resp.get("Subscriptions", []):
                if s.get("Protocol") == protocol.value and s.get("Endpoint") == endpoint:
                    return s
            token = resp.get("NextToken")
            if not token:
                return None

    def subscribe(self, endpoint: str, protocol=None, topic_arn: Optional[str] = None) -> SubscriptionResult:
        """
        Subscribe endpoint to the alerts topic (created if topic_arn is None).

        Subscribing the same (endpoint, protocol) twice reuses the first subscription.
        """
        proto = _parse_protocol(protocol)
        endpoint = validate_endpoint(endpoint, proto)
        if topic_arn is not None and not str(topic_arn).startswith("arn:"):
            raise ValidationError(f"topic_arn must be an ARN, got {topic_arn!r}")

        arn = topic_arn or self.ensure_topic()

        existing = self.find_subscription(arn, endpoint, proto)
        if existing is not None:
            result = _result(arn, existing.get("SubscriptionArn"), created=False)
            logger.info("%s already subscribed to %s (%s)", endpoint, arn, result.state.value)
            return result

        try:
            resp = self._call(
                "Subscribe",
                lambda: self.sns.subscribe(TopicArn=arn, Protocol=proto.value, Endpoint=endpoint),
            )
        except RemoteServiceError as e:
            if "already" not in e.message.lower():
                raise
            # lost a race with another subscriber; the subscription exists
            logger.info("%s already subscribed to %s", endpoint, arn)
            existing = self.find_subscription(arn, endpoint, proto) or {}
            return _result(arn, existing.get("SubscriptionArn"), created=False)

        result = _result(arn, resp.get("SubscriptionArn"))
        logger.info("Subscribed %s (%s) to %s: %s", endpoint, proto.value, arn, result.state.value)
        return result

    def unsubscribe(self, subscription_arn: str) -> None:
        if not subscription_arn or _state_of(subscription_arn) is SubscriptionState.PENDING_CONFIRMATION:
            raise ValidationError(
                "A confirmed subscription ARN is required; pending subscriptions cannot be removed by ARN."
            )
        self._call("Unsubscribe", lambda: self.sns.unsubscribe(SubscriptionArn=subscription_arn))
        logger.info("Unsubscribed %s", subscription_arn)

    def delete_topic(self, topic_arn: str) -> None:
        # deleting a topic also removes all of its subscriptions
        if not topic_arn or not topic_arn.startswith("arn:"):
            raise ValidationError(f"topic_arn must be an ARN, got {topic_arn!r}")
        self._call("DeleteTopic", lambda: self.sns.delete_topic(TopicArn=topic_arn))
        logger.info("Deleted SNS topic %s", topic_arn)
