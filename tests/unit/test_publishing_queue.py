"""
Tests for the publishing queue management component.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from uuid import uuid4

import pytest

from src.adapters.clock import FrozenClock
from src.components.publishing_queue import (
    CancelInput,
    DeleteInput,
    EnqueueInput,
    GetItemInput,
    ListInput,
    QueueService,
    RescheduleInput,
    RetryInput,
    StatsInput,
    UpcomingInput,
    run_cancel,
    run_delete,
    run_enqueue,
    run_get,
    run_list,
    run_reschedule,
    run_retry,
    run_stats,
    run_upcoming,
    to_local,
    to_utc,
    validate_item,
)
from src.components.retry import RetryPolicy
from tests.fakes import T0, InMemoryQueueStore, make_item


@pytest.fixture
def service(store: InMemoryQueueStore, clock: FrozenClock) -> QueueService:
    return QueueService(store, clock, RetryPolicy(base_delay_seconds=60, max_delay_seconds=3600))


class TestValidateItem:
    def test_valid(self) -> None:
        errors = validate_item(
            platform="ghost",
            priority=100,
            max_retries=0,
            published_url="https://blog.example.com/p/1",
        )
        assert errors == []

    def test_unknown_platform(self) -> None:
        errors = validate_item(platform="myspace")
        assert [e.code for e in errors] == ["platform_invalid"]
        assert errors[0].field == "platform"

    @pytest.mark.parametrize("priority", [-1, 101])
    def test_priority_range(self, priority: int) -> None:
        assert [e.code for e in validate_item(priority=priority)] == ["priority_out_of_range"]

    def test_negative_max_retries(self) -> None:
        assert [e.code for e in validate_item(max_retries=-1)] == ["max_retries_negative"]

    def test_url_scheme(self) -> None:
        errors = validate_item(published_url="ftp://example.com/x")
        assert [e.code for e in errors] == ["url_invalid_scheme"]

    def test_collects_every_error(self) -> None:
        errors = validate_item(platform="nope", priority=500, max_retries=-2)
        assert len(errors) == 3


class TestEnqueue:
    def test_without_schedule_is_queued_now(
        self, service: QueueService, store: InMemoryQueueStore
    ) -> None:
        org, article = uuid4(), uuid4()

        output = run_enqueue(
            EnqueueInput(organization_id=org, article_id=article, platform="wordpress"),
            service,
        )

        assert output.success
        assert output.item is not None
        saved = store.get(output.item.id)
        assert saved.status == "queued"
        assert saved.queued_at == T0
        assert saved.organization_id == org
        assert saved.article_id == article

    def test_with_schedule_is_pending(
        self, service: QueueService, store: InMemoryQueueStore
    ) -> None:
        when = T0 + timedelta(days=1)

        output = run_enqueue(
            EnqueueInput(
                organization_id=uuid4(),
                article_id=uuid4(),
                platform="webflow",
                priority=10,
                scheduled_for=when,
                metadata={"source": "planner"},
            ),
            service,
        )

        assert output.item is not None
        saved = store.get(output.item.id)
        assert saved.status == "pending"
        assert saved.scheduled_for == when
        assert saved.queued_at is None
        assert saved.priority == 10
        assert saved.metadata == {"source": "planner"}

    def test_naive_schedule_is_treated_as_utc(self, service: QueueService) -> None:
        output = run_enqueue(
            EnqueueInput(
                organization_id=uuid4(),
                article_id=uuid4(),
                platform="ghost",
                scheduled_for=datetime(2025, 7, 1, 9, 0),
            ),
            service,
        )

        assert output.item is not None
        assert output.item.scheduled_for is not None
        assert output.item.scheduled_for.tzinfo is not None

    def test_invalid_input_rejected(
        self, service: QueueService, store: InMemoryQueueStore
    ) -> None:
        output = run_enqueue(
            EnqueueInput(
                organization_id=uuid4(), article_id=uuid4(), platform="myspace", priority=-5
            ),
            service,
        )

        assert not output.success
        assert output.item is None
        assert {e.code for e in output.errors} == {"platform_invalid", "priority_out_of_range"}
        assert store.items == {}

    def test_naive_schedule_in_named_zone(
        self, service: QueueService, store: InMemoryQueueStore
    ) -> None:
        output = run_enqueue(
            EnqueueInput(
                organization_id=uuid4(),
                article_id=uuid4(),
                platform="ghost",
                scheduled_for=datetime(2025, 7, 1, 9, 0),
                timezone="America/New_York",
            ),
            service,
        )

        assert output.item is not None
        saved = store.get(output.item.id)
        # EDT is UTC-4 in July
        assert saved.scheduled_for == datetime(2025, 7, 1, 13, 0, tzinfo=UTC)
        assert saved.metadata["timezone"] == "America/New_York"
        assert saved.metadata["scheduled_in_local"] == "2025-07-01T09:00:00"

    def test_aware_schedule_ignores_zone(self, service: QueueService) -> None:
        when = datetime(2025, 7, 1, 9, 0, tzinfo=UTC)

        output = run_enqueue(
            EnqueueInput(
                organization_id=uuid4(),
                article_id=uuid4(),
                platform="ghost",
                scheduled_for=when,
                timezone="Asia/Tokyo",
            ),
            service,
        )

        assert output.item is not None
        assert output.item.scheduled_for == when

    def test_unknown_zone_rejected(
        self, service: QueueService, store: InMemoryQueueStore
    ) -> None:
        output = run_enqueue(
            EnqueueInput(
                organization_id=uuid4(),
                article_id=uuid4(),
                platform="ghost",
                scheduled_for=datetime(2025, 7, 1, 9, 0),
                timezone="Mars/Olympus_Mons",
            ),
            service,
        )

        assert not output.success
        assert [e.code for e in output.errors] == ["timezone_invalid"]
        assert output.errors[0].field == "timezone"
        assert store.items == {}


class TestTimeZones:
    def test_winter_offset(self) -> None:
        assert to_utc(datetime(2025, 1, 15, 9, 0), "Europe/London") == datetime(
            2025, 1, 15, 9, 0, tzinfo=UTC
        )

    def test_summer_offset(self) -> None:
        assert to_utc(datetime(2025, 7, 15, 9, 0), "Europe/London") == datetime(
            2025, 7, 15, 8, 0, tzinfo=UTC
        )

    def test_default_is_utc(self) -> None:
        assert to_utc(datetime(2025, 7, 15, 9, 0)) == datetime(2025, 7, 15, 9, 0, tzinfo=UTC)

    def test_to_local(self) -> None:
        local = to_local(datetime(2025, 7, 1, 13, 0, tzinfo=UTC), "America/New_York")
        assert (local.hour, local.minute) == (9, 0)

    def test_unknown_zone(self) -> None:
        with pytest.raises(ValueError, match="Unknown timezone"):
            to_utc(datetime(2025, 7, 1, 9, 0), "Nowhere/Special")


class TestCancel:
    @pytest.mark.parametrize("status", ["pending", "queued", "failed"])
    def test_cancellable(
        self, service: QueueService, store: InMemoryQueueStore, status: str
    ) -> None:
        item = make_item(status)
        store.add(item)

        output = run_cancel(CancelInput(item_id=item.id), service)

        assert output.success
        assert output.item is not None
        assert output.item.status == "cancelled"
        assert store.get(item.id).updated_at == T0

    @pytest.mark.parametrize("status", ["publishing", "published", "cancelled"])
    def test_not_cancellable(
        self, service: QueueService, store: InMemoryQueueStore, status: str
    ) -> None:
        item = make_item(status)
        store.add(item)

        output = run_cancel(CancelInput(item_id=item.id), service)

        assert not output.success
        assert output.errors[0].code == "invalid_status"
        assert store.get(item.id).status == status

    def test_missing_item(self, service: QueueService) -> None:
        output = run_cancel(CancelInput(item_id=uuid4()), service)
        assert output.errors[0].code == "not_found"

    def test_concurrent_change_reports_conflict(
        self, service: QueueService, store: InMemoryQueueStore
    ) -> None:
        item = make_item("queued")
        store.add(item)

        def worker_started(item_id: object) -> None:
            store.items[item.id].status = "publishing"

        store.before_write = worker_started

        output = run_cancel(CancelInput(item_id=item.id), service)

        assert output.errors[0].code == "conflict"
        assert store.get(item.id).status == "publishing"


class TestRetry:
    def test_failed_item_goes_back_to_retry_lane(
        self, service: QueueService, store: InMemoryQueueStore
    ) -> None:
        item = make_item("failed", retry_count=1)
        item.error_type = "server_error"
        store.add(item)

        output = run_retry(RetryInput(item_id=item.id), service)

        assert output.success
        saved = store.get(item.id)
        assert saved.status == "pending"
        # max(60 * 2**1, 2 * 60)
        assert saved.retry_after == T0 + timedelta(seconds=120)

    def test_rate_limit_waits_the_maximum(
        self, service: QueueService, store: InMemoryQueueStore
    ) -> None:
        item = make_item("failed", retry_count=1)
        item.error_type = "rate_limit"
        store.add(item)

        run_retry(RetryInput(item_id=item.id), service)

        assert store.get(item.id).retry_after == T0 + timedelta(seconds=3600)

    def test_without_error_type_uses_exponential_delay(
        self, service: QueueService, store: InMemoryQueueStore
    ) -> None:
        item = make_item("failed", retry_count=2)
        store.add(item)

        run_retry(RetryInput(item_id=item.id), service)

        assert store.get(item.id).retry_after == T0 + timedelta(seconds=240)

    def test_exhausted_retries_refused(
        self, service: QueueService, store: InMemoryQueueStore
    ) -> None:
        item = make_item("failed", retry_count=3, max_retries=3)
        store.add(item)

        output = run_retry(RetryInput(item_id=item.id), service)

        assert not output.success
        assert output.errors[0].code == "retries_exhausted"
        assert store.get(item.id).status == "failed"

    def test_only_failed_items(self, service: QueueService, store: InMemoryQueueStore) -> None:
        item = make_item("queued")
        store.add(item)

        output = run_retry(RetryInput(item_id=item.id), service)

        assert output.errors[0].code == "invalid_status"

    def test_missing_item(self, service: QueueService) -> None:
        output = run_retry(RetryInput(item_id=uuid4()), service)
        assert output.errors[0].code == "not_found"


class TestReschedule:
    def test_pending_item_moves(self, service: QueueService, store: InMemoryQueueStore) -> None:
        item = make_item("pending", scheduled_for=T0 + timedelta(hours=1))
        item.metadata = {"source": "planner"}
        store.add(item)
        when = T0 + timedelta(days=2)

        output = run_reschedule(RescheduleInput(item_id=item.id, scheduled_for=when), service)

        assert output.success
        saved = store.get(item.id)
        assert saved.status == "pending"
        assert saved.scheduled_for == when
        assert saved.updated_at == T0
        assert saved.metadata["source"] == "planner"
        assert saved.metadata["timezone"] == "UTC"
        assert saved.metadata["rescheduled_at"] == T0.isoformat()

    def test_local_time_in_zone(self, service: QueueService, store: InMemoryQueueStore) -> None:
        item = make_item("pending", scheduled_for=T0 + timedelta(hours=1))
        store.add(item)

        run_reschedule(
            RescheduleInput(
                item_id=item.id,
                scheduled_for=datetime(2025, 6, 20, 9, 0),
                timezone="Europe/Berlin",
            ),
            service,
        )

        # CEST is UTC+2 in June
        assert store.get(item.id).scheduled_for == datetime(2025, 6, 20, 7, 0, tzinfo=UTC)

    def test_retry_wait_leaves_retry_lane(
        self, service: QueueService, store: InMemoryQueueStore
    ) -> None:
        item = make_item("pending", retry_after=T0 + timedelta(minutes=5), retry_count=1)
        store.add(item)

        output = run_reschedule(
            RescheduleInput(item_id=item.id, scheduled_for=T0 + timedelta(hours=3)), service
        )

        assert output.success
        saved = store.get(item.id)
        assert saved.retry_after is None
        assert saved.scheduled_for == T0 + timedelta(hours=3)
        assert saved.retry_count == 1

    @pytest.mark.parametrize("status", ["queued", "publishing", "failed", "published"])
    def test_only_pending_items(
        self, service: QueueService, store: InMemoryQueueStore, status: str
    ) -> None:
        item = make_item(status)
        store.add(item)

        output = run_reschedule(
            RescheduleInput(item_id=item.id, scheduled_for=T0 + timedelta(days=1)), service
        )

        assert output.errors[0].code == "invalid_status"
        assert store.get(item.id).status == status

    @pytest.mark.parametrize("offset", [timedelta(0), timedelta(minutes=-1)])
    def test_time_must_be_in_future(
        self, service: QueueService, store: InMemoryQueueStore, offset: timedelta
    ) -> None:
        item = make_item("pending", scheduled_for=T0 + timedelta(hours=1))
        store.add(item)

        output = run_reschedule(
            RescheduleInput(item_id=item.id, scheduled_for=T0 + offset), service
        )

        assert output.errors[0].code == "schedule_in_past"
        assert output.errors[0].field == "scheduled_for"
        assert store.get(item.id).scheduled_for == T0 + timedelta(hours=1)

    def test_unknown_zone(self, service: QueueService, store: InMemoryQueueStore) -> None:
        item = make_item("pending", scheduled_for=T0 + timedelta(hours=1))
        store.add(item)

        output = run_reschedule(
            RescheduleInput(
                item_id=item.id, scheduled_for=datetime(2025, 7, 1, 9, 0), timezone="Bad/Zone"
            ),
            service,
        )

        assert [e.code for e in output.errors] == ["timezone_invalid"]

    def test_missing_item(self, service: QueueService) -> None:
        output = run_reschedule(
            RescheduleInput(item_id=uuid4(), scheduled_for=T0 + timedelta(days=1)), service
        )
        assert output.errors[0].code == "not_found"

    def test_concurrent_change_reports_conflict(
        self, service: QueueService, store: InMemoryQueueStore
    ) -> None:
        item = make_item("pending", scheduled_for=T0 + timedelta(hours=1))
        store.add(item)

        def promoted(item_id: object) -> None:
            store.items[item.id].status = "queued"

        store.before_write = promoted

        output = run_reschedule(
            RescheduleInput(item_id=item.id, scheduled_for=T0 + timedelta(days=1)), service
        )

        assert output.errors[0].code == "conflict"
        assert store.get(item.id).scheduled_for == T0 + timedelta(hours=1)


class TestUpcoming:
    def test_soonest_first_from_now(
        self, service: QueueService, store: InMemoryQueueStore
    ) -> None:
        org = uuid4()
        later = make_item("pending", organization_id=org, scheduled_for=T0 + timedelta(days=2))
        sooner = make_item("pending", organization_id=org, scheduled_for=T0 + timedelta(hours=2))
        overdue = make_item("pending", organization_id=org, scheduled_for=T0 - timedelta(hours=1))
        waiting = make_item(
            "pending",
            organization_id=org,
            scheduled_for=T0 + timedelta(hours=1),
            retry_after=T0 + timedelta(hours=1),
        )
        store.add(later, sooner, overdue, waiting, make_item("queued", organization_id=org))
        store.add(make_item("pending", scheduled_for=T0 + timedelta(hours=3)))

        output = run_upcoming(UpcomingInput(organization_id=org), service)

        assert [i.id for i in output.items] == [sooner.id, later.id]
        assert output.total == 2

    def test_date_window_and_paging(
        self, service: QueueService, store: InMemoryQueueStore
    ) -> None:
        org = uuid4()
        days = [
            make_item("pending", organization_id=org, scheduled_for=T0 + timedelta(days=d))
            for d in (1, 2, 3, 4)
        ]
        store.add(*days)

        output = run_upcoming(
            UpcomingInput(
                organization_id=org,
                date_from=T0 + timedelta(days=2),
                date_to=T0 + timedelta(days=3, hours=1),
                limit=1,
            ),
            service,
        )

        assert [i.id for i in output.items] == [days[1].id]
        assert output.total == 2

    def test_platform_filter(self, service: QueueService, store: InMemoryQueueStore) -> None:
        org = uuid4()
        ghost = make_item(
            "pending", organization_id=org, platform="ghost", scheduled_for=T0 + timedelta(days=1)
        )
        wix = make_item(
            "pending", organization_id=org, platform="wix", scheduled_for=T0 + timedelta(days=1)
        )
        store.add(ghost, wix)

        output = run_upcoming(UpcomingInput(organization_id=org, platform="wix"), service)

        assert [i.id for i in output.items] == [wix.id]


class TestDeleteAndGet:
    def test_soft_delete_hides_item(
        self, service: QueueService, store: InMemoryQueueStore
    ) -> None:
        item = make_item("queued")
        store.add(item)

        output = run_delete(DeleteInput(item_id=item.id), service)

        assert output.success
        assert store.get(item.id).deleted_at == T0
        assert not run_get(GetItemInput(item_id=item.id), service).success

    def test_delete_twice(self, service: QueueService, store: InMemoryQueueStore) -> None:
        item = make_item("queued")
        store.add(item)
        run_delete(DeleteInput(item_id=item.id), service)

        output = run_delete(DeleteInput(item_id=item.id), service)

        assert output.errors[0].code == "not_found"

    def test_get(self, service: QueueService, store: InMemoryQueueStore) -> None:
        item = make_item("pending")
        store.add(item)

        output = run_get(GetItemInput(item_id=item.id), service)

        assert output.success
        assert output.item is not None
        assert output.item.id == item.id


class TestListAndStats:
    def test_list_filters_and_orders_newest_first(
        self, service: QueueService, store: InMemoryQueueStore
    ) -> None:
        org = uuid4()
        old = make_item("queued", organization_id=org, created_at=T0 - timedelta(days=2))
        new = make_item("queued", organization_id=org, created_at=T0 - timedelta(hours=1))
        failed = make_item("failed", organization_id=org)
        store.add(old, new, failed, make_item("queued"))

        output = run_list(ListInput(organization_id=org, status="queued"), service)

        assert [i.id for i in output.items] == [new.id, old.id]
        assert output.total == 2

    def test_stats(self, service: QueueService, store: InMemoryQueueStore) -> None:
        org = uuid4()
        store.add(
            make_item("queued", organization_id=org, platform="ghost"),
            make_item("failed", organization_id=org, platform="ghost", retry_count=2),
            make_item("failed", organization_id=org, platform="wix", retry_count=1),
            make_item("publishing", organization_id=org, platform="wix"),
            make_item("queued"),
        )

        stats = run_stats(StatsInput(organization_id=org), service)

        assert stats.total == 4
        assert stats.by_status == {"queued": 1, "failed": 2, "publishing": 1}
        assert stats.by_platform == {"ghost": 2, "wix": 2}
        assert stats.failed_count == 2
        assert stats.publishing_count == 1
        assert stats.avg_retry_count == 0.75

    def test_stats_empty(self, service: QueueService) -> None:
        stats = run_stats(StatsInput(organization_id=uuid4()), service)
        assert stats.total == 0
        assert stats.avg_retry_count == 0.0

    def test_list_total_counts_beyond_page(
        self, service: QueueService, store: InMemoryQueueStore
    ) -> None:
        org = uuid4()
        store.add(*(make_item("queued", organization_id=org) for _ in range(3)))

        first = run_list(ListInput(organization_id=org, limit=1), service)
        last = run_list(ListInput(organization_id=org, limit=2, offset=2), service)

        assert len(first.items) == 1
        assert first.total == 3
        assert len(last.items) == 1
        assert last.total == 3
