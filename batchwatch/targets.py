# batchwatch/targets.py
"""
Point an EventBridge rule at an SNS topic.

Two things are needed before an alert actually reaches the subscriber:
1) the topic registered as a target of the rule (events:PutTargets)
2) a statement in the topic policy allowing events.amazonaws.com to sns:Publish,
   scoped to this rule's ARN

Without (2) the target is accepted but every delivery is silently dropped, so a
failure there is reported as PartialWiringError instead of a plain failure.
Both steps are idempotent: the target id and the policy Sid are derived from
the inputs, so re-running replaces entries instead of adding new ones.
"""

import copy
import hashlib
import json
import logging
from dataclasses import dataclass
from typing import Optional

from .errors import PartialWiringError, RemoteServiceError, ValidationError
from .retry import call_with_retry
from .rules import validate_rule_name

logger = logging.getLogger(__name__)

EVENTS_PRINCIPAL = "events.amazonaws.com"
# read-check-write rounds before a contended policy update gives up
POLICY_WRITE_ATTEMPTS = 3
_NOT_FOUND = {"ResourceNotFoundException", "ResourceNotFound", "NotFound"}


@dataclass(frozen=True)
class TargetBinding:
    rule_name: str
    topic_arn: str
    target_id: str
    permission_granted: bool


def _sha(s: str) -> str:
    return hashlib.sha1(s.encode("utf-8")).hexdigest()[:8]


def target_id_for(topic_arn: str) -> str:
    # Target Id: <= 64 chars, letters/numbers/.-_ only
    topic_name = topic_arn.rsplit(":", 1)[-1]
    safe = "".join(ch if ch.isalnum() or ch in ".-_" else "-" for ch in topic_name)
    return f"sns-{safe[:46]}-{_sha(topic_arn)}"


def statement_id_for(rule_name: str) -> str:
    cleaned = "".join(ch for ch in rule_name if ch.isalnum())
    return f"BatchwatchPublish{cleaned[:40]}{_sha(rule_name)}"


def _validate_topic_arn(topic_arn: str) -> str:
    if not isinstance(topic_arn, str) or not topic_arn.startswith("arn:") or ":sns:" not in topic_arn:
        raise ValidationError(f"topic_arn must be an SNS topic ARN, got {topic_arn!r}")
    return topic_arn


def publish_statement(sid: str, topic_arn: str, rule_arn: str) -> dict:
    return {
        "Sid": sid,
        "Effect": "Allow",
        "Principal": {"Service": EVENTS_PRINCIPAL},
        "Action": "sns:Publish",
        "Resource": topic_arn,
        "Condition": {"ArnEquals": {"aws:SourceArn": rule_arn}},
    }


class TargetBinder:
    def __init__(self, events, sns, *, max_attempts: int = 1, retry_sleep_sec: float = 2.0):
        self.events = events
        self.sns = sns
        self.max_attempts = max_attempts
        self.retry_sleep_sec = retry_sleep_sec

    def _call(self, operation: str, fn):
        return call_with_retry(fn, operation, max_attempts=self.max_attempts, sleep_sec=self.retry_sleep_sec)

    def _rule_arn(self, rule_name: str) -> str:
        resp = self._call("DescribeRule", lambda: self.events.describe_rule(Name=rule_name))
        return resp["Arn"]

    def _get_policy(self, topic_arn: str) -> dict:
        attrs = self._call(
            "GetTopicAttributes", lambda: self.sns.get_topic_attributes(TopicArn=topic_arn)
        ).get("Attributes", {})
        raw = attrs.get("Policy") or ""
        if not raw.strip():
            return {"Version": "2012-10-17", "Statement": []}
        try:
            policy = json.loads(raw)
        except ValueError as e:
            raise RemoteServiceError(
                "GetTopicAttributes", "MalformedPolicy", f"topic policy on {topic_arn} is not valid JSON: {e}"
            ) from e
        if not isinstance(policy, dict):
            raise RemoteServiceError(
                "GetTopicAttributes", "MalformedPolicy", f"topic policy on {topic_arn} is not a JSON object"
            )
        return policy

    @staticmethod
    def _statements(policy: dict) -> list:
        statements = policy.get("Statement", [])
        if isinstance(statements, dict):
            statements = [statements]
        return list(statements)

    def _set_policy(self, topic_arn: str, policy: dict) -> None:
        self._call(
            "SetTopicAttributes",
            lambda: self.sns.set_topic_attributes(
                TopicArn=topic_arn,
                AttributeName="Policy",
                AttributeValue=json.dumps(policy),
            ),
        )

    def bind(self, rule_name: str, topic_arn: str) -> TargetBinding:
        """
        Register topic_arn as a target of rule_name and allow the rule to publish to it.

        Raises RemoteServiceError if the target can't be registered (nothing was
        changed) and PartialWiringError if only the permission step failed.
        """
        validate_rule_name(rule_name)
        _validate_topic_arn(topic_arn)

        rule_arn = self._rule_arn(rule_name)
        target_id = target_id_for(topic_arn)

        resp = self._call(
            "PutTargets",
            lambda: self.events.put_targets(
                Rule=rule_name,
                Targets=[{"Id": target_id, "Arn": topic_arn}],
            ),
        )
        failed = resp.get("FailedEntries") or []
        if resp.get("FailedEntryCount", len(failed)) or failed:
            entry = failed[0] if failed else {}
            logger.error("Failed to put targets on %s: %s", rule_name, failed)
            raise RemoteServiceError(
                "PutTargets",
                entry.get("ErrorCode", "FailedEntry"),
                entry.get("ErrorMessage", f"failed entries: {failed}"),
            )
        logger.info("Put target %s on rule %s -> %s", target_id, rule_name, topic_arn)

        try:
            self.grant_publish_permission(rule_name, topic_arn, rule_arn=rule_arn)
        except RemoteServiceError as e:
            logger.error("Target %s registered but publish permission failed: %s", target_id, e)
            raise PartialWiringError(rule_name, topic_arn, target_id, e) from e

        return TargetBinding(rule_name, topic_arn, target_id, permission_granted=True)

    def grant_publish_permission(self, rule_name: str, topic_arn: str, rule_arn: Optional[str] = None) -> bool:
        """
        Ensure the topic policy lets this rule publish. Returns True if the policy
        was changed, False if the statement was already there.

        SNS has no conditional write for the policy, so a binder working on the
        same topic can overwrite our statement between read and write. The
        policy is re-read before writing and checked after writing; a lost
        update is re-applied up to POLICY_WRITE_ATTEMPTS times and then raised
        as RemoteServiceError(ConcurrentModification).
        """
        validate_rule_name(rule_name)
        _validate_topic_arn(topic_arn)
        if rule_arn is None:
            rule_arn = self._rule_arn(rule_name)

        sid = statement_id_for(rule_name)
        wanted = publish_statement(sid, topic_arn, rule_arn)

        for attempt in range(1, POLICY_WRITE_ATTEMPTS + 1):
            snapshot = self._get_policy(topic_arn)
            policy = copy.deepcopy(snapshot)
            statements = self._statements(policy)
            if wanted in statements:
                if attempt == 1:
                    logger.info("Publish permission for %s already present on %s", rule_name, topic_arn)
                    return False
                logger.info("Granted %s publish on %s for rule %s", EVENTS_PRINCIPAL, topic_arn, rule_arn)
                return True

            # replace a stale statement with the same Sid (rule recreated elsewhere)
            policy["Statement"] = [s for s in statements if s.get("Sid") != sid] + [wanted]
            if self._get_policy(topic_arn) != snapshot:
                logger.warning("Policy on %s changed while granting %s, re-reading", topic_arn, rule_name)
                continue
            self._set_policy(topic_arn, policy)

            if wanted in self._statements(self._get_policy(topic_arn)):
                logger.info("Granted %s publish on %s for rule %s", EVENTS_PRINCIPAL, topic_arn, rule_arn)
                return True
            logger.warning(
                "Publish statement %s missing from %s after write (attempt %d/%d)",
                sid, topic_arn, attempt, POLICY_WRITE_ATTEMPTS,
            )

        raise RemoteServiceError(
            "SetTopicAttributes",
            "ConcurrentModification",
            f"topic policy on {topic_arn} kept changing; publish statement {sid} not applied",
            retryable=True,
        )

    def unbind(self, rule_name: str, topic_arn: str) -> None:
        """Remove the target and the publish statement. Missing pieces are ignored."""
        validate_rule_name(rule_name)
        _validate_topic_arn(topic_arn)
        target_id = target_id_for(topic_arn)

        try:
            self._call(
                "RemoveTargets",
                lambda: self.events.remove_targets(Rule=rule_name, Ids=[target_id]),
            )
            logger.info("Removed target %s from rule %s", target_id, rule_name)
        except RemoteServiceError as e:
            if e.code not in _NOT_FOUND:
                raise

        try:
            policy = self._get_policy(topic_arn)
        except RemoteServiceError as e:
            if e.code not in _NOT_FOUND:
                raise
            return

        sid = statement_id_for(rule_name)
        statements = self._statements(policy)
        kept = [s for s in statements if s.get("Sid") != sid]
        if len(kept) != len(statements):
            policy["Statement"] = kept
            self._set_policy(topic_arn, policy)
            logger.info("Revoked publish permission for rule %s on %s", rule_name, topic_arn)
