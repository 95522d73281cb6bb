"""Shared fixtures: in-memory SNS and EventBridge clients that record every call."""

import json
from collections import Counter

import pytest
from botocore.exceptions import ClientError

from batchwatch import Watcher, WatcherConfig

ACCOUNT = "123456789012"
REGION = "us-east-1"


def client_error(code: str, message: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": message}}, operation)


class _FakeClient:
    def __init__(self):
        self.calls = []
        self.counts = Counter()
        self._failures = {}

    def fail(self, method: str, code: str, message: str = "injected failure", times: int = 1):
        """Make the next `times` calls to `method` raise ClientError(code)."""
        self._failures[method] = [code, message, times]

    def _record(self, method: str, **kwargs):
        self.calls.append((method, kwargs))
        self.counts[method] += 1
        failure = self._failures.get(method)
        if failure and failure[2] > 0:
            failure[2] -= 1
            raise client_error(failure[0], failure[1], method)

    @property
    def total_calls(self) -> int:
        return len(self.calls)


class FakeSns(_FakeClient):
    def __init__(self, auto_confirm: bool = False):
        super().__init__()
        self.auto_confirm = auto_confirm
        self.topics = {}          # arn -> name
        self.subscriptions = {}   # arn -> [subscription dict]
        self.policies = {}        # arn -> policy json
        self.page_size = 100
        self._sub_seq = 0

    def _require_topic(self, arn, method):
        if arn not in self.topics:
            raise client_error("NotFound", "Topic does not exist", method)

    def create_topic(self, Name):
        self._record("create_topic", Name=Name)
        arn = f"arn:aws:sns:{REGION}:{ACCOUNT}:{Name}"
        if arn not in self.topics:
            self.topics[arn] = Name
            self.subscriptions[arn] = []
            self.policies[arn] = json.dumps({
                "Version": "2008-10-17",
                "Id": "__default_policy_ID",
                "Statement": [{
                    "Sid": "__default_statement_ID",
                    "Effect": "Allow",
                    "Principal": {"AWS": "*"},
                    "Action": ["SNS:Publish", "SNS:Subscribe"],
                    "Resource": arn,
                    "Condition": {"StringEquals": {"AWS:SourceOwner": ACCOUNT}},
                }],
            })
        return {"TopicArn": arn}

    def subscribe(self, TopicArn, Protocol, Endpoint):
        self._record("subscribe", TopicArn=TopicArn, Protocol=Protocol, Endpoint=Endpoint)
        self._require_topic(TopicArn, "Subscribe")
        for s in self.subscriptions[TopicArn]:
            if s["Protocol"] == Protocol and s["Endpoint"] == Endpoint:
                if s["SubscriptionArn"] == "PendingConfirmation":
                    return {"SubscriptionArn": "pending confirmation"}
                return {"SubscriptionArn": s["SubscriptionArn"]}

        self._sub_seq += 1
        confirmed = self.auto_confirm or Protocol not in ("email", "email-json", "http", "https")
        sub_arn = f"{TopicArn}:sub-{self._sub_seq}" if confirmed else "PendingConfirmation"
        self.subscriptions[TopicArn].append({
            "SubscriptionArn": sub_arn,
            "Owner": ACCOUNT,
            "Protocol": Protocol,
            "Endpoint": Endpoint,
            "TopicArn": TopicArn,
        })
        return {"SubscriptionArn": sub_arn if confirmed else "pending confirmation"}

    def list_subscriptions_by_topic(self, TopicArn, NextToken=None):
        self._record("list_subscriptions_by_topic", TopicArn=TopicArn, NextToken=NextToken)
        self._require_topic(TopicArn, "ListSubscriptionsByTopic")
        start = int(NextToken or 0)
        subs = self.subscriptions[TopicArn]
        page = subs[start:start + self.page_size]
        resp = {"Subscriptions": [dict(s) for s in page]}
        if start + self.page_size < len(subs):
            resp["NextToken"] = str(start + self.page_size)
        return resp

    def unsubscribe(self, SubscriptionArn):
        self._record("unsubscribe", SubscriptionArn=SubscriptionArn)
        for subs in self.subscriptions.values():
            subs[:] = [s for s in subs if s["SubscriptionArn"] != SubscriptionArn]
        return {}

    def delete_topic(self, TopicArn):
        self._record("delete_topic", TopicArn=TopicArn)
        self.topics.pop(TopicArn, None)
        self.subscriptions.pop(TopicArn, None)
        self.policies.pop(TopicArn, None)
        return {}

    def get_topic_attributes(self, TopicArn):
        self._record("get_topic_attributes", TopicArn=TopicArn)
        self._require_topic(TopicArn, "GetTopicAttributes")
        return {"Attributes": {"TopicArn": TopicArn, "Policy": self.policies[TopicArn]}}

    def set_topic_attributes(self, TopicArn, AttributeName, AttributeValue):
        self._record("set_topic_attributes", TopicArn=TopicArn, AttributeName=AttributeName, AttributeValue=AttributeValue)
        self._require_topic(TopicArn, "SetTopicAttributes")
        if AttributeName == "Policy":
            self.policies[TopicArn] = AttributeValue
        return {}

    def policy_statements(self, topic_arn):
        return json.loads(self.policies[topic_arn])["Statement"]


class FakeEvents(_FakeClient):
    def __init__(self):
        super().__init__()
        self.rules = {}     # name -> rule dict
        self.targets = {}   # name -> {id: target}
        self.failed_entries = []

    def _require_rule(self, name, operation):
        if name not in self.rules:
            raise client_error("ResourceNotFoundException", f"Rule {name} does not exist.", operation)

    def put_rule(self, Name, EventPattern, State, Description=None):
        self._record("put_rule", Name=Name, EventPattern=EventPattern, State=State, Description=Description)
        arn = f"arn:aws:events:{REGION}:{ACCOUNT}:rule/{Name}"
        rule = {"Name": Name, "Arn": arn, "EventPattern": EventPattern, "State": State}
        if Description is not None:
            rule["Description"] = Description
        elif Name in self.rules and "Description" in self.rules[Name]:
            rule["Description"] = self.rules[Name]["Description"]
        self.rules[Name] = rule
        self.targets.setdefault(Name, {})
        return {"RuleArn": arn}

    def describe_rule(self, Name):
        self._record("describe_rule", Name=Name)
        self._require_rule(Name, "DescribeRule")
        return dict(self.rules[Name])

    def put_targets(self, Rule, Targets):
        self._record("put_targets", Rule=Rule, Targets=Targets)
        self._require_rule(Rule, "PutTargets")
        if self.failed_entries:
            failed, self.failed_entries = self.failed_entries, []
            return {"FailedEntryCount": len(failed), "FailedEntries": failed}
        for t in Targets:
            self.targets[Rule][t["Id"]] = dict(t)
        return {"FailedEntryCount": 0, "FailedEntries": []}

    def list_targets_by_rule(self, Rule, NextToken=None):
        self._record("list_targets_by_rule", Rule=Rule, NextToken=NextToken)
        self._require_rule(Rule, "ListTargetsByRule")
        return {"Targets": list(self.targets[Rule].values())}

    def remove_targets(self, Rule, Ids):
        self._record("remove_targets", Rule=Rule, Ids=Ids)
        self._require_rule(Rule, "RemoveTargets")
        for i in Ids:
            self.targets[Rule].pop(i, None)
        return {"FailedEntryCount": 0, "FailedEntries": []}

    def delete_rule(self, Name):
        self._record("delete_rule", Name=Name)
        if self.targets.get(Name):
            raise client_error("ValidationException", "Rule can't be deleted since it has targets.", "DeleteRule")
        self.rules.pop(Name, None)
        self.targets.pop(Name, None)
        return {}


@pytest.fixture
def sns() -> FakeSns:
    return FakeSns()


@pytest.fixture
def events() -> FakeEvents:
    return FakeEvents()


@pytest.fixture
def watcher(sns: FakeSns, events: FakeEvents) -> Watcher:
    """Watcher wired to the fake clients, topic named T1."""
    return Watcher(WatcherConfig(topic_name="T1", sns_client=sns, events_client=events))


@pytest.fixture
def confirming_sns() -> FakeSns:
    """SNS fake where every subscription is confirmed immediately."""
    return FakeSns(auto_confirm=True)
