"""
Pytest fixtures for Time Machine tests.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from teamhub.kernel.events.event_types import EventAuthor, EventRecord
from teamhub.kernel.events.notifier import ChangeNotifier
from teamhub.kernel.models.base import Base
from teamhub.kernel.models.event_log import EventCategory, EventType
from teamhub.kernel.models.member import Member


# Monday
BASE_TIME = datetime(2024, 3, 4, 9, 0, tzinfo=timezone.utc)

ANA_ID = uuid.UUID("00000000-0000-0000-0000-0000000000a1")
BRUNO_ID = uuid.UUID("00000000-0000-0000-0000-0000000000b2")
CARLA_ID = uuid.UUID("00000000-0000-0000-0000-0000000000c3")

MEMBER_NAMES = {ANA_ID: "Ana", BRUNO_ID: "Bruno", CARLA_ID: "Carla"}


def make_event(
    category: EventCategory = EventCategory.TASK,
    event_type: EventType = EventType.CREATION,
    title: str = "Something happened",
    at: Optional[datetime] = None,
    user_id: Optional[uuid.UUID] = ANA_ID,
    description: Optional[str] = None,
    metadata: Any = None,
    related_event_id: Optional[uuid.UUID] = None,
    event_id: Optional[uuid.UUID] = None,
) -> EventRecord:
    """Build an in-memory event; the author name comes from MEMBER_NAMES."""
    author = None
    if user_id is not None and user_id in MEMBER_NAMES:
        author = EventAuthor(full_name=MEMBER_NAMES[user_id])
    return EventRecord(
        id=event_id or uuid.uuid4(),
        event_type=event_type,
        event_category=category,
        title=title,
        description=description,
        metadata={} if metadata is None else metadata,
        user_id=user_id,
        related_event_id=related_event_id,
        created_at=at or BASE_TIME,
        user=author,
    )


def hours(n: float) -> timedelta:
    return timedelta(hours=n)


def days(n: float) -> timedelta:
    return timedelta(days=n)


@pytest.fixture
def sample_events() -> list:
    """A small two-week history across three members."""
    return [
        make_event(EventCategory.GOAL, EventType.CREATION, "Goal created: Win regional", BASE_TIME, ANA_ID),
        make_event(EventCategory.TASK, EventType.CREATION, "Task created: Build base", BASE_TIME + hours(1), BRUNO_ID),
        make_event(EventCategory.TASK, EventType.COMPLETION, "Task completed: Build base", BASE_TIME + days(1), BRUNO_ID),
        make_event(EventCategory.TEST, EventType.CREATION, "Test run: Arm lift", BASE_TIME + days(2), CARLA_ID),
        make_event(EventCategory.PROTOTYPE, EventType.CREATION, "Prototype: Gripper v1", BASE_TIME + days(3), ANA_ID),
        make_event(EventCategory.FEEDBACK, EventType.CREATION, "Feedback: Judges", BASE_TIME + days(8), BRUNO_ID),
        make_event(EventCategory.GOAL, EventType.COMPLETION, "Goal completed: Win regional", BASE_TIME + days(9), ANA_ID),
    ]


@pytest.fixture
def notifier() -> ChangeNotifier:
    return ChangeNotifier()


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Session on a private in-memory SQLite database."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with maker() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture
async def member(db_session: AsyncSession) -> Member:
    row = Member(
        id=uuid.uuid4(),
        email="ana@example.com",
        full_name="Ana Souza",
        avatar_url="https://cdn.example.com/ana.png",
    )
    db_session.add(row)
    await db_session.commit()
    return row


@pytest.fixture
def event_factory():
    """make_event, for tests that build their own histories."""
    return make_event


@pytest.fixture
def base_time() -> datetime:
    return BASE_TIME


@pytest.fixture
def team():
    """(ana, bruno, carla) member ids; names are Ana, Bruno and Carla."""
    return ANA_ID, BRUNO_ID, CARLA_ID
