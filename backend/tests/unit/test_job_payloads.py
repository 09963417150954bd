"""
Unit Tests: Job Payloads

Test cases:
- Discriminated parsing by kind
- Queue routing per kind
- Stable job ids
- Unknown kinds and malformed payloads are rejected
"""

from uuid import uuid4

import pytest
from pydantic import ValidationError

from doomsettle.jobs.handlers import JOB_HANDLERS
from doomsettle.jobs.payloads import (
    JOB_QUEUES,
    BatchPayoutJob,
    NotificationJob,
    PayoutPurpose,
    QueueName,
    ResolutionJob,
    parse_job,
    payout_job_id,
    queue_for,
    resolution_job_id,
)
from doomsettle.schemas.common import Outcome, TokenKind


def test_parses_each_variant_from_json_payload():
    event_id = uuid4()
    resolution = ResolutionJob(event_id=event_id, outcome=Outcome.DOOM)
    batch = BatchPayoutJob(event_id=event_id, bet_ids=[uuid4()], token_kind=TokenKind.DOOM)
    notification = NotificationJob(
        user_id=uuid4(), event_id=event_id, title="You won!", body="142 DOOM", amount=142
    )

    for job in (resolution, batch, notification):
        parsed = parse_job(job.model_dump(mode="json"))
        assert type(parsed) is type(job)
        assert parsed == job


def test_queue_routing():
    event_id = uuid4()
    assert queue_for(ResolutionJob(event_id=event_id, outcome="life")) == QueueName.RESOLUTION
    assert (
        queue_for(BatchPayoutJob(event_id=event_id, bet_ids=[uuid4()], token_kind="life"))
        == QueueName.PAYOUTS
    )
    assert QueueName.RESOLUTION.value == "event-resolution"
    assert QueueName.PAYOUTS.value == "batch-payouts"


def test_every_kind_has_a_queue_and_a_handler():
    assert set(JOB_QUEUES) == set(JOB_HANDLERS) == {"resolution", "batch_payout", "notification"}


def test_unknown_kind_is_rejected():
    with pytest.raises(ValidationError):
        parse_job({"kind": "airdrop", "event_id": str(uuid4())})


def test_empty_batch_is_rejected():
    with pytest.raises(ValidationError):
        parse_job({"kind": "batch_payout", "event_id": str(uuid4()), "bet_ids": [], "token_kind": "doom"})


def test_extra_fields_are_rejected():
    payload = ResolutionJob(event_id=uuid4(), outcome="doom").model_dump(mode="json")
    payload["force"] = True
    with pytest.raises(ValidationError):
        parse_job(payload)


def test_job_ids():
    event_id = uuid4()
    assert resolution_job_id(event_id, 1767268800) == f"resolve:{event_id}:1767268800"

    job = BatchPayoutJob(
        event_id=event_id,
        bet_ids=[uuid4()],
        token_kind=TokenKind.DOOM,
        purpose=PayoutPurpose.REFUND,
        batch_index=3,
    )
    assert payout_job_id(job) == f"refund:{event_id}:3"
