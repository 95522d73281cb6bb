"""
Unit tests for Batch job state-change event patterns.

Patterns are pure data: these tests never touch a client.
"""

import json

import pytest

from batchwatch import ANY_STATE, JobState, ValidationError, build_event_pattern
from batchwatch.patterns import MAX_PATTERN_LENGTH


def test_pattern_matches_batch_job_state_changes() -> None:
    """Test that source and detail-type always target Batch job state changes."""
    doc = build_event_pattern({"FAILED"}).to_dict()

    assert doc["source"] == ["aws.batch"]
    assert doc["detail-type"] == ["Batch Job State Change"]
    assert doc["detail"] == {"status": ["FAILED"]}


def test_pattern_includes_only_non_empty_filters() -> None:
    """Test that queue and job definition restrictions appear only when given."""
    doc = build_event_pattern({"FAILED", "RUNNABLE"}, ["Q1"], ["D1"]).to_dict()

    assert doc["detail"] == {
        "status": ["RUNNABLE", "FAILED"],
        "jobQueue": ["Q1"],
        "jobDefinition": ["D1"],
    }

    doc = build_event_pattern(["FAILED"], [], []).to_dict()
    assert "jobQueue" not in doc["detail"]
    assert "jobDefinition" not in doc["detail"]


def test_pattern_is_deterministic() -> None:
    """Test that identical inputs produce identical documents and JSON."""
    a = build_event_pattern({"SUCCEEDED", "FAILED", "RUNNABLE"}, ["Q1", "Q2"], ["D1"])
    b = build_event_pattern({"RUNNABLE", "FAILED", "SUCCEEDED"}, ["Q1", "Q2"], ["D1"])

    assert a == b
    assert a.to_dict() == b.to_dict()
    assert a.to_json() == b.to_json()


def test_states_are_sorted_in_lifecycle_order_and_deduplicated() -> None:
    """Test that states accept enum or case-insensitive strings."""
    pattern = build_event_pattern(["failed", JobState.SUBMITTED, "FAILED", " running "])

    assert pattern.states == (JobState.SUBMITTED, JobState.RUNNING, JobState.FAILED)


def test_resource_filters_keep_caller_order_without_duplicates() -> None:
    """Test that queues keep first-seen order and drop repeats."""
    pattern = build_event_pattern(["FAILED"], ["Q2", "Q1", "Q2"], ["D1", "D1"])

    assert pattern.queues == ("Q2", "Q1")
    assert pattern.job_definitions == ("D1",)


def test_single_string_state_is_not_split_into_characters() -> None:
    """Test that a bare string is treated as one state."""
    assert build_event_pattern("FAILED").states == (JobState.FAILED,)


def test_empty_state_filter_is_rejected() -> None:
    """Test that an empty state filter is a validation error, not 'all states'."""
    with pytest.raises(ValidationError, match="ANY_STATE"):
        build_event_pattern([])

    with pytest.raises(ValidationError):
        build_event_pattern(None)


def test_any_state_omits_status_filter() -> None:
    """Test that ANY_STATE is the explicit way to match every state."""
    pattern = build_event_pattern(ANY_STATE, ["Q1"])

    assert pattern.any_state
    assert pattern.to_dict()["detail"] == {"jobQueue": ["Q1"]}


def test_any_state_without_filters_has_no_detail_block() -> None:
    """Test that an empty detail object is never emitted."""
    doc = build_event_pattern(ANY_STATE).to_dict()

    assert "detail" not in doc


def test_unknown_state_is_rejected() -> None:
    """Test that states outside the Batch lifecycle fail validation."""
    with pytest.raises(ValidationError, match="Unknown job state"):
        build_event_pattern(["EXPLODED"])


@pytest.mark.parametrize("bad", ["", "   ", "has space", None, 42])
def test_malformed_identifiers_are_rejected(bad) -> None:
    """Test that queue identifiers must be non-empty strings without whitespace."""
    with pytest.raises(ValidationError):
        build_event_pattern(["FAILED"], ["Q1", bad])


def test_job_name_and_job_id_filters() -> None:
    """Test the optional jobName / jobId restrictions."""
    doc = build_event_pattern(["FAILED"], job_names=["nightly-etl"], job_ids=["4c75"]).to_dict()

    assert doc["detail"]["jobName"] == ["nightly-etl"]
    assert doc["detail"]["jobId"] == ["4c75"]


def test_oversized_pattern_is_rejected() -> None:
    """Test that patterns EventBridge would reject fail locally."""
    queues = [f"arn:aws:batch:us-east-1:123456789012:job-queue/q{i:04d}" for i in range(100)]

    with pytest.raises(ValidationError, match=str(MAX_PATTERN_LENGTH)):
        build_event_pattern(["FAILED"], queues)


def test_to_json_round_trips_to_to_dict() -> None:
    """Test that the serialized form is the document itself."""
    pattern = build_event_pattern(["FAILED"], ["Q1"], ["D1"])

    assert json.loads(pattern.to_json()) == pattern.to_dict()
