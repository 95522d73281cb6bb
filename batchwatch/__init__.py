"""Alerts for AWS Batch job state changes via EventBridge rules and SNS topics."""

from .config import WatcherConfig
from .errors import PartialWiringError, RemoteServiceError, ValidationError, WatchError
from .patterns import ANY_STATE, EventPattern, JobState, build_event_pattern
from .rules import RuleCoordinator
from .subscriptions import Protocol, SubscriptionCoordinator, SubscriptionResult, SubscriptionState
from .targets import TargetBinder, TargetBinding
from .watcher import Watcher, WatchSetup

__version__ = "0.1.0"

__all__ = [
    "ANY_STATE",
    "EventPattern",
    "JobState",
    "PartialWiringError",
    "Protocol",
    "RemoteServiceError",
    "RuleCoordinator",
    "SubscriptionCoordinator",
    "SubscriptionResult",
    "SubscriptionState",
    "TargetBinder",
    "TargetBinding",
    "ValidationError",
    "WatchError",
    "WatchSetup",
    "Watcher",
    "WatcherConfig",
    "build_event_pattern",
]
