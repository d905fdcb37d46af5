from unittest.mock import MagicMock

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session
from sqlalchemy.pool import StaticPool

from tryon.services.history import HistoryRecord, HistoryRepository, TryOnHistory
from tryon.services.recorder import HISTORY_INSERT, USAGE_INCREMENT, SideEffectRecorder
from tryon.services.usage import UsageCounter


@pytest.fixture
def repository():
    engine = create_engine(
        "sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool
    )
    repo = HistoryRepository(engine)
    repo.create_tables()
    return repo


def _record(**overrides):
    values = dict(
        session_id="sess-1",
        shop_domain="shop.example.com",
        product_id="prod-1",
        product_category="Running Shoes",
        user_photo_url="https://cdn/u.jpg",
        product_image_url="https://cdn/p0.jpg",
        generated_image_url="https://replicate.delivery/out.png",
        generation_time_ms=1234,
        metadata={"category_type": "FOOTWEAR", "used_fallback": False},
    )
    values.update(overrides)
    return HistoryRecord(**values)


def test_history_repository_inserts_row(repository):
    row_id = repository.insert(_record(customer_id="cust-9"))

    with Session(repository.engine) as session:
        row = session.scalars(select(TryOnHistory).where(TryOnHistory.id == row_id)).one()
    assert row.status == "completed"
    assert row.customer_id == "cust-9"
    assert row.metadata_json["category_type"] == "FOOTWEAR"
    assert row.created_at is not None


def test_plan_requires_identifiers():
    recorder = SideEffectRecorder(usage=MagicMock(), history=MagicMock())
    assert recorder.plan(shop_domain=None, history=None) == []

    entries = recorder.plan(shop_domain="shop.example.com", history=_record())
    assert [entry.kind for entry in entries] == [USAGE_INCREMENT, HISTORY_INSERT]

    entries = recorder.plan(shop_domain="shop.example.com", history=_record(session_id=""))
    assert [entry.kind for entry in entries] == [USAGE_INCREMENT]


def test_record_writes_usage_and_history(fake_redis, repository):
    recorder = SideEffectRecorder(usage=UsageCounter(fake_redis), history=repository)

    outcome = recorder.record(recorder.plan(shop_domain="shop.example.com", history=_record()))

    assert len(outcome.succeeded) == 2
    assert outcome.failed == []
    assert UsageCounter(fake_redis).current("shop.example.com") == 1
    with Session(repository.engine) as session:
        assert len(session.scalars(select(TryOnHistory)).all()) == 1


def test_failures_are_retained_not_raised(repository):
    usage = MagicMock()
    usage.increment.side_effect = ConnectionError("redis down")
    recorder = SideEffectRecorder(usage=usage, history=repository)

    outcome = recorder.record(recorder.plan(shop_domain="shop.example.com", history=_record()))

    assert [entry.kind for entry in outcome.failed] == [USAGE_INCREMENT]
    pending = recorder.pending
    assert len(pending) == 1
    assert pending[0].attempts == 1
    assert "redis down" in pending[0].last_error


def test_replay_retries_pending_entries():
    usage = MagicMock()
    usage.increment.side_effect = [ConnectionError("redis down"), 1]
    recorder = SideEffectRecorder(usage=usage)

    recorder.record(recorder.plan(shop_domain="shop.example.com", history=None))
    assert len(recorder.pending) == 1

    outcome = recorder.replay()
    assert len(outcome.succeeded) == 1
    assert outcome.succeeded[0].attempts == 2
    assert recorder.pending == []


def test_unconfigured_stores_are_not_planned():
    recorder = SideEffectRecorder()

    for _ in range(100):
        entries = recorder.plan(shop_domain="shop.example.com", history=_record())
        recorder.record(entries)

    assert entries == []
    assert recorder.pending == []

    recorder = SideEffectRecorder(usage=MagicMock())
    entries = recorder.plan(shop_domain="shop.example.com", history=_record())
    assert [entry.kind for entry in entries] == [USAGE_INCREMENT]


def test_pending_outbox_is_bounded():
    usage = MagicMock()
    usage.increment.side_effect = ConnectionError("redis down")
    recorder = SideEffectRecorder(usage=usage, max_pending=3)

    for index in range(10):
        recorder.record(recorder.plan(shop_domain=f"shop-{index}.example.com", history=None))

    pending = recorder.pending
    assert len(pending) == 3
    assert [entry.payload["shop_domain"] for entry in pending] == [
        "shop-7.example.com",
        "shop-8.example.com",
        "shop-9.example.com",
    ]
