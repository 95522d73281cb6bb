# batchwatch/watcher.py
"""
Watcher: alert a subscriber when AWS Batch jobs change state.

Pipeline (each stage is idempotent and can be re-run on its own):

    sub = watcher.subscribe("ops@example.com")
    rule = watcher.create_job_watcher_rule("batch-failures", True, "failed jobs",
                                           {"FAILED"}, [queue_arn], [])
    watcher.create_sns_target(rule, sub.topic_arn)

The Watcher keeps no state between calls beyond its clients. Nothing is rolled
back when a later stage fails; re-run the failed stage with the same names.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from .config import WatcherConfig
from .patterns import build_event_pattern
from .rules import RuleCoordinator, validate_rule_name
from .subscriptions import SubscriptionCoordinator, SubscriptionResult
from .targets import TargetBinder, TargetBinding

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WatchSetup:
    subscription: SubscriptionResult
    rule_name: str
    binding: TargetBinding


class Watcher:
    def __init__(self, config: Optional[WatcherConfig] = None):
        self.config = config or WatcherConfig()
        sns, events = self.config.make_clients()
        retry = {"max_attempts": self.config.max_attempts, "retry_sleep_sec": self.config.retry_sleep_sec}

        self.subscriptions = SubscriptionCoordinator(sns, self.config.topic_name, **retry)
        self.rules = RuleCoordinator(events, **retry)
        self.targets = TargetBinder(events, sns, **retry)

    # -----------------------------
    # Stage 1: SNS
    # -----------------------------
    def subscribe(self, endpoint: str, protocol=None, topic_arn: Optional[str] = None) -> SubscriptionResult:
        """Create the alerts topic if topic_arn is None, then subscribe endpoint (email by default)."""
        return self.subscriptions.subscribe(endpoint, protocol, topic_arn=topic_arn)

    def unsubscribe(self, subscription_arn: str) -> None:
        self.subscriptions.unsubscribe(subscription_arn)

    def delete_topic(self, topic_arn: str) -> None:
        self.subscriptions.delete_topic(topic_arn)

    # -----------------------------
    # Stage 2: EventBridge rule
    # -----------------------------
    def create_job_watcher_rule(
        self,
        rule_name: str,
        enabled: bool,
        description: Optional[str],
        states,
        queues: Iterable[str] = (),
        job_definitions: Iterable[str] = (),
        job_names: Iterable[str] = (),
        job_ids: Iterable[str] = (),
        *,
        overwrite: bool = True,
    ) -> str:
        """
        Upsert a rule matching Batch job state changes.

        states is required (use patterns.ANY_STATE for every state); queues,
        job_definitions, job_names and job_ids narrow the match when non-empty.
        All input is validated before EventBridge is called. Returns the rule name.
        """
        validate_rule_name(rule_name)
        pattern = build_event_pattern(states, queues, job_definitions, job_names, job_ids)
        return self.rules.create_or_update_rule(rule_name, enabled, description, pattern, overwrite=overwrite)

    def delete_job_watcher_rule(self, rule_name: str) -> None:
        self.rules.delete_rule(rule_name)

    # -----------------------------
    # Stage 3: target + permission
    # -----------------------------
    def create_sns_target(self, rule_name: str, topic_arn: str) -> TargetBinding:
        return self.targets.bind(rule_name, topic_arn)

    def grant_publish_permission(self, rule_name: str, topic_arn: str) -> bool:
        # retry path after PartialWiringError
        return self.targets.grant_publish_permission(rule_name, topic_arn)

    def remove_sns_target(self, rule_name: str, topic_arn: str) -> None:
        self.targets.unbind(rule_name, topic_arn)

    # -----------------------------
    # All stages
    # -----------------------------
    def watch(
        self,
        endpoint: str,
        rule_name: str,
        states,
        queues: Iterable[str] = (),
        job_definitions: Iterable[str] = (),
        *,
        protocol=None,
        topic_arn: Optional[str] = None,
        enabled: bool = True,
        description: Optional[str] = None,
        job_names: Iterable[str] = (),
        job_ids: Iterable[str] = (),
        overwrite: bool = True,
    ) -> WatchSetup:
        """
        Run subscribe -> rule -> target in order. The first failure propagates;
        stages that already succeeded are left in place.
        """
        # validate the rule inputs up front so bad filters don't leave a topic behind
        validate_rule_name(rule_name)
        build_event_pattern(states, queues, job_definitions, job_names, job_ids)

        sub = self.subscribe(endpoint, protocol, topic_arn=topic_arn)
        name = self.create_job_watcher_rule(
            rule_name, enabled, description, states, queues, job_definitions,
            job_names, job_ids, overwrite=overwrite,
        )
        binding = self.create_sns_target(name, sub.topic_arn)
        logger.info("Watching %s: rule %s -> %s", endpoint, name, sub.topic_arn)
        return WatchSetup(sub, name, binding)
