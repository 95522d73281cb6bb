# batchwatch/config.py
"""
Explicit configuration for a Watcher: region / profile, timeouts, retry policy,
and optionally pre-built boto3 clients. Nothing here reads files or env vars;
boto3's own credential chain still applies when no profile is given.
"""

from dataclasses import dataclass
from typing import Any, Optional

import boto3
from botocore.config import Config

DEFAULT_TOPIC_NAME = "batchwatch-alerts"


@dataclass(frozen=True)
class WatcherConfig:
    region: Optional[str] = None
    profile_name: Optional[str] = None
    topic_name: str = DEFAULT_TOPIC_NAME

    # Per-call deadline (seconds)
    connect_timeout: float = 10.0
    read_timeout: float = 30.0

    # 1 = never retry automatically
    max_attempts: int = 1
    retry_sleep_sec: float = 2.0

    # Inject clients directly (tests, custom credentials)
    sns_client: Any = None
    events_client: Any = None

    def botocore_config(self) -> Config:
        # botocore retries are disabled; retry policy lives in batchwatch.retry
        return Config(
            connect_timeout=self.connect_timeout,
            read_timeout=self.read_timeout,
            retries={"total_max_attempts": 1, "mode": "standard"},
        )

    def session(self) -> boto3.Session:
        return boto3.Session(region_name=self.region, profile_name=self.profile_name)

    def make_clients(self):
        """Return (sns, events) clients, building the missing ones from a boto3 Session."""
        sns = self.sns_client
        events = self.events_client
        if sns is None or events is None:
            sess = self.session()
            cfg = self.botocore_config()
            if sns is None:
                sns = sess.client("sns", config=cfg)
            if events is None:
                events = sess.client("events", config=cfg)
        return sns, events
