"""
Tests for bucket transition notifications and snapshot storage.
"""

import json
from datetime import date

import httpx
import pandas as pd
import pytest

from health.notifier import BucketTransitionNotifier, percent_drop
from health.runner import HealthRunStats
from health.store import ActivityMetrics, CustomerHealthSnapshot, InMemorySnapshotStore
from scoring import CustomerMetrics, RiskResult


def _snapshot(bucket="at_risk", changed_from="watch", day=date(2024, 6, 15), **kwargs):
    score = {"healthy": 10, "watch": 35, "at_risk": 80}[bucket]
    return CustomerHealthSnapshot(
        organization_id="org_1",
        customer_id=kwargs.pop("customer_id", "cus_1"),
        date=day,
        metrics=CustomerMetrics(cancel_attempts_7d=1, cancel_attempts_30d=1),
        risk_score=score,
        risk_bucket=bucket,
        bucket_changed_from=changed_from,
        **kwargs,
    )


def _alert_payloads(caplog, tag):
    return [
        json.loads(r.getMessage().split(" ", 1)[1])
        for r in caplog.records
        if r.getMessage().startswith(tag)
    ]


class TestPercentDrop:
    @pytest.mark.parametrize("last,previous,expected", [
        (5, 10, "50%"),
        (0, 10, "100%"),
        (1, 3, "67%"),
        (10, 10, "N/A"),   # No drop
        (12, 10, "N/A"),   # Growth
        (3, 0, "N/A"),     # No prior activity
        (0, 0, "N/A"),
    ])
    def test_percent_drop(self, last, previous, expected):
        assert percent_drop(last, previous) == expected


class TestBucketTransitionNotifier:
    @pytest.mark.asyncio
    async def test_at_risk_alert(self, caplog):
        notifier = BucketTransitionNotifier()
        snapshot = _snapshot(
            customer_email="a@example.com",
            activity=ActivityMetrics(
                logins_last_7d=2,
                logins_prev_7d=10,
                core_actions_last_7d=5,
                core_actions_prev_7d=0,
                active_users_last_7d=3,
                seats_dropped_last_30d=1,
            ),
        )

        with caplog.at_level("INFO", logger="health.notifier"):
            kind = await notifier.notify(snapshot)

        assert kind == "account_at_risk"
        (payload,) = _alert_payloads(caplog, "[CHURN_ALERT]")
        assert payload["organizationId"] == "org_1"
        assert payload["customerId"] == "cus_1"
        assert payload["customerEmail"] == "a@example.com"
        assert payload["riskScore"] == 80
        assert payload["previousBucket"] == "watch"
        assert payload["newBucket"] == "at_risk"
        assert payload["metrics"] == {
            "loginDrop": "80%",
            "actionDrop": "N/A",
            "activeUsers": 3,
            "seatsDropped": 1,
        }

    @pytest.mark.asyncio
    async def test_improvement_alert(self, caplog):
        notifier = BucketTransitionNotifier()

        with caplog.at_level("INFO", logger="health.notifier"):
            kind = await notifier.notify(_snapshot(bucket="healthy", changed_from="at_risk"))

        assert kind == "account_improved"
        (payload,) = _alert_payloads(caplog, "[CHURN_IMPROVEMENT]")
        assert payload["previousBucket"] == "at_risk"
        assert "metrics" not in payload

    @pytest.mark.asyncio
    @pytest.mark.parametrize("bucket,changed_from", [
        ("watch", "healthy"),     # Worse, but not at risk
        ("healthy", "watch"),     # Better, but was not at risk
        ("at_risk", None),        # First snapshot
        ("at_risk", "at_risk"),   # Same bucket
    ])
    async def test_no_message(self, caplog, bucket, changed_from):
        notifier = BucketTransitionNotifier()

        with caplog.at_level("INFO", logger="health.notifier"):
            kind = await notifier.notify(_snapshot(bucket=bucket, changed_from=changed_from))

        assert kind is None
        assert not [r for r in caplog.records if r.getMessage().startswith("[CHURN")]

    @pytest.mark.asyncio
    async def test_run_complete_summary(self, caplog):
        notifier = BucketTransitionNotifier()
        stats = HealthRunStats(
            organizations_processed=2,
            customers_processed=10,
            new_at_risk=1,
            improved=2,
            errors=0,
            duration_ms=1234,
        )

        with caplog.at_level("INFO", logger="health.notifier"):
            await notifier.notify_run_complete(stats)

        (payload,) = _alert_payloads(caplog, "[DAILY_HEALTH_COMPLETE]")
        assert payload["type"] == "daily_health_complete"
        assert payload["customersProcessed"] == 10
        assert payload["durationMs"] == 1234

    @pytest.mark.asyncio
    async def test_webhook_receives_message(self):
        received = []

        def handler(request):
            received.append(json.loads(request.content))
            return httpx.Response(200)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        notifier = BucketTransitionNotifier(webhook_url="https://hooks.example/alert", client=client)

        await notifier.notify(_snapshot())
        await client.aclose()

        assert received[0]["type"] == "account_at_risk"

    @pytest.mark.asyncio
    async def test_webhook_failure_never_raises(self, caplog):
        def handler(request):
            raise httpx.ConnectError("down", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        notifier = BucketTransitionNotifier(webhook_url="https://hooks.example/alert", client=client)

        with caplog.at_level("ERROR", logger="health.notifier"):
            kind = await notifier.notify(_snapshot())
        await client.aclose()

        assert kind == "account_at_risk"
        assert any("Failed to send" in r.getMessage() for r in caplog.records)


class TestCustomerHealthSnapshot:
    def test_build_sets_changed_from_only_on_change(self):
        risk = RiskResult(score=80, bucket="at_risk", factors=("x",))
        previous = _snapshot(bucket="watch", changed_from=None, day=date(2024, 6, 14))
        same = _snapshot(bucket="at_risk", changed_from=None, day=date(2024, 6, 14))

        changed = CustomerHealthSnapshot.build(
            "org_1", "cus_1", date(2024, 6, 15), CustomerMetrics(), risk, previous=previous
        )
        unchanged = CustomerHealthSnapshot.build(
            "org_1", "cus_1", date(2024, 6, 15), CustomerMetrics(), risk, previous=same
        )
        first = CustomerHealthSnapshot.build(
            "org_1", "cus_1", date(2024, 6, 15), CustomerMetrics(), risk
        )

        assert changed.bucket_changed_from == "watch"
        assert unchanged.bucket_changed_from is None
        assert first.bucket_changed_from is None

    def test_to_record(self):
        record = _snapshot().to_record()

        assert record["customerId"] == "cus_1"
        assert record["date"] == "2024-06-15"
        assert record["riskScore"] == 80
        assert record["riskBucket"] == "at_risk"
        assert record["bucketChangedFrom"] == "watch"
        assert record["metrics"]["cancel_attempts_7d"] == 1

    def test_to_record_omits_unchanged_bucket(self):
        assert "bucketChangedFrom" not in _snapshot(changed_from=None).to_record()


class TestInMemorySnapshotStore:
    @pytest.mark.asyncio
    async def test_save_is_idempotent_per_day(self, snapshot_store):
        first = _snapshot(bucket="watch", changed_from=None)
        second = _snapshot(bucket="at_risk", changed_from="watch")

        stored, created = await snapshot_store.save(first)
        again, created_again = await snapshot_store.save(second)

        assert created and not created_again
        assert again == first
        assert len(snapshot_store) == 1

    @pytest.mark.asyncio
    async def test_latest_before_is_strict(self, snapshot_store):
        await snapshot_store.save(_snapshot(day=date(2024, 6, 10), changed_from=None))
        await snapshot_store.save(_snapshot(day=date(2024, 6, 12), changed_from=None))

        latest = await snapshot_store.latest_before("org_1", "cus_1", date(2024, 6, 12))

        assert latest.date == date(2024, 6, 10)
        assert await snapshot_store.latest_before("org_1", "cus_1", date(2024, 6, 10)) is None
        assert await snapshot_store.latest_before("org_2", "cus_1", date(2024, 6, 30)) is None

    @pytest.mark.asyncio
    async def test_dataframe_round_trip(self, snapshot_store, tmp_path):
        await snapshot_store.save(_snapshot(day=date(2024, 6, 14), changed_from=None))
        await snapshot_store.save(_snapshot(day=date(2024, 6, 15), customer_email="a@example.com"))

        path = tmp_path / "snapshots.csv"
        snapshot_store.to_dataframe().to_csv(path, index=False)
        restored = InMemorySnapshotStore.from_dataframe(pd.read_csv(path))

        history = restored.history("org_1", "cus_1")
        assert [s.date for s in history] == [date(2024, 6, 14), date(2024, 6, 15)]
        assert history[0].bucket_changed_from is None
        assert history[1].bucket_changed_from == "watch"
        assert history[1].customer_email == "a@example.com"
        assert history[1].metrics == CustomerMetrics(cancel_attempts_7d=1, cancel_attempts_30d=1)
