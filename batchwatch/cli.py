# batchwatch/cli.py
"""
Set up email (or other SNS) alerts for AWS Batch job state changes.

Example:
batchwatch \
  --region us-east-1 \
  --email ops@example.com \
  --rule-name batch-failures \
  --states FAILED,RUNNABLE \
  --queues arn:aws:batch:us-east-1:123456789012:job-queue/HighPriority \
  --job-definitions arn:aws:batch:us-east-1:123456789012:job-definition/first-run:1

Job queues and job definitions are matched exactly against the ARNs in the
event, so pass full ARNs (job definitions include the revision).
Re-running with the same --rule-name updates the rule in place.
"""

import argparse
import sys

from botocore.exceptions import BotoCoreError

from .config import DEFAULT_TOPIC_NAME, WatcherConfig
from .errors import PartialWiringError, RemoteServiceError, ValidationError
from .patterns import ANY_STATE
from .subscriptions import SubscriptionState
from .watcher import Watcher


def _csv(value: str):
    return [v.strip() for v in value.split(",") if v.strip()]


def parse_args(argv=None):
    p = argparse.ArgumentParser(description="Alert on AWS Batch job state changes")
    p.add_argument("--region", default=None)
    p.add_argument("--profile", default=None)

    # Alerting
    p.add_argument("--email", required=True, help="Endpoint to subscribe (email address unless --protocol)")
    p.add_argument("--protocol", default="email")
    p.add_argument("--topic-name", default=DEFAULT_TOPIC_NAME)
    p.add_argument("--topic-arn", default=None, help="Use an existing topic instead of creating one")

    # Rule
    p.add_argument("--rule-name", required=True)
    p.add_argument("--description", default=None)
    p.add_argument("--states", type=_csv, default=[], help="Comma-separated, e.g. FAILED,RUNNABLE")
    p.add_argument("--all-states", action="store_true", help="Match every job state")
    p.add_argument("--queues", type=_csv, default=[], help="Comma-separated job queue ARNs")
    p.add_argument(
        "--job-definitions", type=_csv, default=[],
        help="Comma-separated job definition ARNs, including the revision (...:job-definition/name:1)",
    )
    p.add_argument("--job-names", type=_csv, default=[])
    p.add_argument("--disabled", action="store_true", help="Create the rule in DISABLED state")
    p.add_argument("--no-overwrite", action="store_true", help="Fail if the rule already exists")

    # Calls
    p.add_argument("--max-attempts", type=int, default=1, help="Retries for throttling/timeouts (default 1 = none)")
    p.add_argument("--timeout", type=float, default=30.0, help="Read timeout per AWS call, seconds")
    return p.parse_args(argv)


def main(argv=None, watcher=None) -> int:
    args = parse_args(argv)
    if args.all_states and args.states:
        print("❌ Use either --states or --all-states, not both.", file=sys.stderr)
        return 1

    states = ANY_STATE if args.all_states else args.states

    try:
        if watcher is None:
            watcher = Watcher(
                WatcherConfig(
                    region=args.region,
                    profile_name=args.profile,
                    topic_name=args.topic_name,
                    read_timeout=args.timeout,
                    max_attempts=args.max_attempts,
                )
            )
        setup = watcher.watch(
            args.email,
            args.rule_name,
            states,
            args.queues,
            args.job_definitions,
            protocol=args.protocol,
            topic_arn=args.topic_arn,
            enabled=not args.disabled,
            description=args.description,
            job_names=args.job_names,
            overwrite=not args.no_overwrite,
        )
    except ValidationError as e:
        print(f"❌ Invalid input: {e}", file=sys.stderr)
        return 1
    except PartialWiringError as e:
        print(f"⚠️ {e}", file=sys.stderr)
        print("   Re-run the same command to retry the permission step.", file=sys.stderr)
        return 3
    except RemoteServiceError as e:
        print(f"❌ AWS call failed: {e}", file=sys.stderr)
        return 2
    except BotoCoreError as e:
        # no region, no credentials, unknown profile
        print(f"❌ AWS client setup failed: {e}", file=sys.stderr)
        return 2

    sub = setup.subscription
    print("SNS topic:", sub.topic_arn)
    if sub.state is SubscriptionState.PENDING_CONFIRMATION:
        print("✅ Subscription created. Confirm it from your inbox:", args.email)
    elif not sub.created:
        print("ℹ️ Subscription already exists:", sub.subscription_arn)
    else:
        print("✅ Subscription confirmed:", sub.subscription_arn)

    print("✅ EventBridge rule:", setup.rule_name, "(DISABLED)" if args.disabled else "")
    print("✅ SNS target:", setup.binding.target_id, "-> publish permission granted")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
