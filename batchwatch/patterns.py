# batchwatch/patterns.py
"""
EventBridge event patterns for AWS Batch "Batch Job State Change" events.

A Batch event looks like (trimmed):

    {
      "source": "aws.batch",
      "detail-type": "Batch Job State Change",
      "detail": {
        "jobName": "event-test",
        "jobId": "4c7599ae-0a82-49aa-ba5a-4727fcce14a8",
        "jobQueue": "arn:aws:batch:us-east-1:123456789012:job-queue/HighPriority",
        "jobDefinition": "arn:aws:batch:us-east-1:123456789012:job-definition/first-run:1",
        "status": "RUNNABLE",
        ...
      }
    }

See https://docs.aws.amazon.com/batch/latest/userguide/batch_cwe_events.html
"""

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterable, Tuple, Union

from .errors import ValidationError

BATCH_SOURCE = "aws.batch"
BATCH_DETAIL_TYPE = "Batch Job State Change"

# PutRule rejects patterns longer than this
MAX_PATTERN_LENGTH = 4096


class JobState(str, Enum):
    SUBMITTED = "SUBMITTED"
    PENDING = "PENDING"
    RUNNABLE = "RUNNABLE"
    STARTING = "STARTING"
    RUNNING = "RUNNING"
    SUCCEEDED = "SUCCEEDED"
    FAILED = "FAILED"


# lifecycle order, used to sort states deterministically
_STATE_ORDER = {s: i for i, s in enumerate(JobState)}


class _AnyState:
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return "ANY_STATE"


# Explicit "match every state". An empty state list is an error, not this.
ANY_STATE = _AnyState()


@dataclass(frozen=True)
class EventPattern:
    """
    Validated pattern. Prefer build_event_pattern(), which also normalizes input;
    constructing directly still enforces the same rules: states must be JobState
    values, and an empty states tuple is only allowed with any_state=True.
    """

    states: Tuple[JobState, ...] = ()
    queues: Tuple[str, ...] = ()
    job_definitions: Tuple[str, ...] = ()
    job_names: Tuple[str, ...] = ()
    job_ids: Tuple[str, ...] = ()
    any_state: bool = False

    def __post_init__(self):
        states = tuple(self.states)
        bad = [s for s in states if not isinstance(s, JobState)]
        if bad:
            raise ValidationError(f"states must be JobState values, got {bad!r}")
        if self.any_state and states:
            raise ValidationError("any_state=True cannot be combined with explicit states.")
        if not self.any_state and not states:
            raise ValidationError(
                "At least one job state is required; pass ANY_STATE to match every state."
            )
        # frozen: coerce to tuples in place
        object.__setattr__(self, "states", states)
        for field in ("queues", "job_definitions", "job_names", "job_ids"):
            object.__setattr__(self, field, _normalize_identifiers(field, getattr(self, field)))

    def to_dict(self) -> Dict[str, Any]:
        detail: Dict[str, Any] = {}
        if self.states:
            detail["status"] = [s.value for s in self.states]
        if self.queues:
            detail["jobQueue"] = list(self.queues)
        if self.job_definitions:
            detail["jobDefinition"] = list(self.job_definitions)
        if self.job_names:
            detail["jobName"] = list(self.job_names)
        if self.job_ids:
            detail["jobId"] = list(self.job_ids)

        doc: Dict[str, Any] = {
            "source": [BATCH_SOURCE],
            "detail-type": [BATCH_DETAIL_TYPE],
        }
        # EventBridge rejects empty objects in a pattern
        if detail:
            doc["detail"] = detail
        return doc

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))


def _parse_state(value) -> JobState:
    if isinstance(value, JobState):
        return value
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"Invalid job state: {value!r}")
    try:
        return JobState(value.strip().upper())
    except ValueError:
        allowed = ", ".join(s.value for s in JobState)
        raise ValidationError(f"Unknown job state {value!r}; expected one of: {allowed}") from None


def _normalize_states(states) -> Tuple[JobState, ...]:
    if states is ANY_STATE:
        return ()
    if states is None or isinstance(states, (str, JobState)):
        # a bare string would otherwise be iterated char by char
        states = [] if states is None else [states]
    parsed = {_parse_state(s) for s in states}
    if not parsed:
        raise ValidationError(
            "At least one job state is required; pass ANY_STATE to match every state."
        )
    return tuple(sorted(parsed, key=_STATE_ORDER.__getitem__))


def _normalize_identifiers(field: str, values: Iterable[str]) -> Tuple[str, ...]:
    if values is None:
        return ()
    if isinstance(values, str):
        values = [values]
    seen = []
    for v in values:
        if not isinstance(v, str) or not v.strip():
            raise ValidationError(f"{field}: identifiers must be non-empty strings, got {v!r}")
        if any(ch.isspace() for ch in v):
            raise ValidationError(f"{field}: identifier contains whitespace: {v!r}")
        if v not in seen:
            seen.append(v)
    return tuple(seen)


def build_event_pattern(
    states: Union[Iterable[Union[JobState, str]], _AnyState],
    queues: Iterable[str] = (),
    job_definitions: Iterable[str] = (),
    job_names: Iterable[str] = (),
    job_ids: Iterable[str] = (),
) -> EventPattern:
    """
    Build the pattern for Batch job state changes.

    states must be non-empty (or ANY_STATE). Every other filter is optional;
    empty means no restriction on that field. Pure function, no AWS calls.
    """
    pattern = EventPattern(
        states=_normalize_states(states),
        queues=queues,
        job_definitions=job_definitions,
        job_names=job_names,
        job_ids=job_ids,
        any_state=states is ANY_STATE,
    )
    size = len(pattern.to_json())
    if size > MAX_PATTERN_LENGTH:
        raise ValidationError(
            f"Event pattern is {size} characters; EventBridge allows at most {MAX_PATTERN_LENGTH}."
        )
    return pattern
