"""Shared fixtures: in-memory store, frozen clock, recording collaborators."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Optional
from uuid import uuid4

import logfire
import pytest

from doomsettle.config import DatabaseConfig, Settings
from doomsettle.database.session import Database
from doomsettle.runtime import SettlementRuntime
from doomsettle.schemas.bet import BetCreate
from doomsettle.schemas.common import Outcome
from doomsettle.schemas.event import EventCreate, EvidenceCreate, VerificationSourceCreate

T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture(scope="session", autouse=True)
def local_logfire():
    logfire.configure(send_to_logfire=False, console=False)


class FrozenClock:
    """Clock that only moves when told to."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now

    def set(self, now: datetime) -> None:
        self.now = now


@dataclass
class EnqueuedJob:
    queue: str
    job: object
    job_id: Optional[str]
    delay: Optional[float]
    priority: Optional[int]


class RecordingQueue:
    """Queue manager that records instead of publishing."""

    def __init__(self):
        self.enqueued: list[EnqueuedJob] = []

    def enqueue(self, queue_name, job, delay=None, priority=None, job_id=None) -> str:
        self.enqueued.append(EnqueuedJob(queue_name, job, job_id, delay, priority))
        return job_id or f"task-{len(self.enqueued)}"

    def jobs(self, kind: str) -> list:
        return [entry.job for entry in self.enqueued if entry.job.kind == kind]

    def clear(self) -> None:
        self.enqueued.clear()


class RecordingAudit:
    def __init__(self):
        self.records: list[tuple[str, dict]] = []

    def record(self, event: str, details: dict) -> None:
        self.records.append((event, details))

    def events(self) -> list[str]:
        return [event for event, _ in self.records]


class RecordingNotifier:
    def __init__(self):
        self.delivered: list[dict] = []

    async def deliver(self, user_id: str, title: str, body: str, data: dict) -> None:
        self.delivered.append({"user_id": user_id, "title": title, "body": body, "data": data})


@pytest.fixture
def settings() -> Settings:
    return Settings(
        database=DatabaseConfig(url="sqlite+aiosqlite://"),
        logfire_token="",
        config_path=Path("does-not-exist.yaml"),
    )


@pytest.fixture
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture
def queue() -> RecordingQueue:
    return RecordingQueue()


@pytest.fixture
def audit() -> RecordingAudit:
    return RecordingAudit()


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
async def database(settings):
    database = Database(settings.database)
    await database.create_all()
    yield database
    await database.dispose()


@pytest.fixture
def runtime(settings, database, queue, audit, notifier, clock) -> SettlementRuntime:
    return SettlementRuntime(
        settings=settings,
        database=database,
        queue=queue,
        audit=audit,
        notifier=notifier,
        clock=clock,
    )


@pytest.fixture
async def db(database):
    async with database.session() as session:
        yield session


class Factory:
    """Builds users, events and bets through the real services."""

    def __init__(self, runtime: SettlementRuntime, db, clock: FrozenClock):
        self.runtime = runtime
        self.db = db
        self.clock = clock

    async def user(self, doom: int = 10_000, life: int = 0):
        return await self.runtime.ledger.create_account(
            self.db, f"user-{uuid4().hex[:8]}", doom_balance=doom, life_balance=life
        )

    async def event(self, creator=None, sources: tuple = ()):
        creator = creator or await self.user()
        now = self.clock()
        data = EventCreate(
            title="Will the sea wall hold through 2026?",
            betting_deadline=now + timedelta(hours=1),
            event_deadline=now + timedelta(hours=2),
            resolution_deadline=now + timedelta(days=7),
            sources=[VerificationSourceCreate(**s) for s in sources],
        )
        return await self.runtime.events.create_event(self.db, creator.id, data)

    async def bet(self, event, outcome: str, amount: int, user=None):
        user = user or await self.user(doom=max(amount, 10_000))
        return await self.runtime.events.place_bet(
            self.db, event.id, user.id, BetCreate(outcome=Outcome(outcome), amount=amount)
        )

    async def evidence(self, event, count: int = 1):
        submitter = uuid4()
        for n in range(count):
            await self.runtime.events.add_evidence(
                self.db,
                event.id,
                submitter,
                EvidenceCreate(evidence_type="url", content=f"https://example.org/report/{n}"),
            )

    async def proposed_event(self, stakes, outcome: str = "doom", evidence: int = 3):
        """Event with bets placed, deadline passed and ``outcome`` proposed."""
        event = await self.event()
        bets = [await self.bet(event, side, amount) for side, amount in stakes]
        self.clock.advance(hours=3)
        await self.evidence(event, evidence)
        proposer = uuid4()
        event = await self.runtime.disputes.propose(self.db, event.id, Outcome(outcome), proposer)
        return event, bets


@pytest.fixture
def factory(runtime, db, clock) -> Factory:
    return Factory(runtime, db, clock)
