# batchwatch/rules.py
"""
EventBridge rules for Batch job state changes.

put_rule is an upsert: running setup again with the same rule name replaces
the pattern / state / description in place. Last writer wins; we don't read
the rule first unless the caller asks for overwrite=False.
"""

import logging
import re
from typing import Optional

from .errors import RemoteServiceError, ValidationError
from .patterns import EventPattern
from .retry import call_with_retry

logger = logging.getLogger(__name__)

# EventBridge rule names: 1-64 chars of [.\-_A-Za-z0-9]
_RULE_NAME_RE = re.compile(r"^[.\-_A-Za-z0-9]{1,64}$")
MAX_DESCRIPTION_LENGTH = 512
_NOT_FOUND = {"ResourceNotFoundException", "ResourceNotFound"}


def validate_rule_name(name: str) -> str:
    if not isinstance(name, str) or not name:
        raise ValidationError("Rule name must be a non-empty string.")
    if not _RULE_NAME_RE.match(name):
        raise ValidationError(
            f"Invalid rule name {name!r}: use 1-64 letters, digits, '.', '-' or '_'."
        )
    return name


class RuleCoordinator:
    def __init__(self, events, *, max_attempts: int = 1, retry_sleep_sec: float = 2.0):
        self.events = events
        self.max_attempts = max_attempts
        self.retry_sleep_sec = retry_sleep_sec

    def _call(self, operation: str, fn):
        return call_with_retry(fn, operation, max_attempts=self.max_attempts, sleep_sec=self.retry_sleep_sec)

    def describe(self, name: str) -> Optional[dict]:
        """Return the DescribeRule response, or None if the rule doesn't exist."""
        validate_rule_name(name)
        try:
            return self._call("DescribeRule", lambda: self.events.describe_rule(Name=name))
        except RemoteServiceError as e:
            if e.code in _NOT_FOUND:
                return None
            raise

    def rule_arn(self, name: str) -> str:
        # a missing rule surfaces as RemoteServiceError(ResourceNotFoundException)
        validate_rule_name(name)
        resp = self._call("DescribeRule", lambda: self.events.describe_rule(Name=name))
        return resp["Arn"]

    def create_or_update_rule(
        self,
        name: str,
        enabled: bool,
        description: Optional[str],
        pattern: EventPattern,
        *,
        overwrite: bool = True,
    ) -> str:
        """
        Create the rule, or replace an existing rule of the same name.

        Returns the rule name, which is the rule's identifier for every later
        EventBridge call (targets, describe, delete). With overwrite=False an
        existing rule raises ValidationError and nothing is written.
        """
        validate_rule_name(name)
        if not isinstance(pattern, EventPattern):
            raise ValidationError(f"pattern must be an EventPattern, got {type(pattern).__name__}")
        if description is not None and len(description) > MAX_DESCRIPTION_LENGTH:
            raise ValidationError(f"Rule description is longer than {MAX_DESCRIPTION_LENGTH} characters.")

        if not overwrite and self.describe(name) is not None:
            raise ValidationError(f"Rule {name!r} already exists and overwrite=False.")

        request = {
            "Name": name,
            "EventPattern": pattern.to_json(),
            "State": "ENABLED" if enabled else "DISABLED",
        }
        # absent and empty are different: "" clears an old description
        if description is not None:
            request["Description"] = description

        resp = self._call("PutRule", lambda: self.events.put_rule(**request))
        logger.info("Put rule %s (%s): %s", name, request["State"], resp.get("RuleArn", ""))
        return name

    def delete_rule(self, name: str) -> None:
        """Remove every target of the rule, then the rule. A missing rule is fine."""
        validate_rule_name(name)
        if self.describe(name) is None:
            logger.info("Rule %s not found, nothing to delete", name)
            return

        target_ids = []
        token = None
        while True:
            kwargs = {"Rule": name}
            if token:
                kwargs["NextToken"] = token
            resp = self._call("ListTargetsByRule", lambda: self.events.list_targets_by_rule(**kwargs))
            target_ids.extend(t["Id"] for t in resp.get("Targets", []))
            token = resp.get("NextToken")
            if not token:
                break

        # RemoveTargets takes at most 10 ids per call
        for i in range(0, len(target_ids), 10):
            batch = target_ids[i:i + 10]
            self._call("RemoveTargets", lambda: self.events.remove_targets(Rule=name, Ids=batch))

        self._call("DeleteRule", lambda: self.events.delete_rule(Name=name))
        logger.info("Deleted rule %s (%d targets removed)", name, len(target_ids))
