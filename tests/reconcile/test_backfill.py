"""
Tests for TrackingReconciler.backfill_missing_trackings: idempotence,
uniqueness and coverage-driven creation across every started period.
"""

from collections import Counter
from datetime import date

from tracking_kernel.domain.clock import DeterministicClock
from tracking_kernel.domain.types import ContentType
from tracking_reconcile.reconciler import TrackingReconciler
from tracking_reconcile.store import SqlTrackingStore
from tracking_reconcile.summary import RunStatus

FY_2025 = date(2025, 4, 1)


def _identities(rows):
    return [(r.resource_id, r.year, r.period, r.content_type) for r in rows]


class TestBackfill:

    def test_creates_every_started_period(self, factory, reconciler, all_trackings):
        service = factory.service(factory.customer(), FY_2025)
        factory.resource(service, [(date(2025, 4, 1), None)])

        summary = reconciler.backfill_missing_trackings()

        assert summary.status is RunStatus.COMPLETED
        assert summary.trackings_created == 9
        assert summary.historical_trackings_created == 6
        assert summary.historical_periods_processed == 3
        assert summary.periods_checked == 3
        assert sorted({(r.period, r.schedule) for r in all_trackings()}) == [
            (4, "4/2025"), (5, "5/2025"), (6, "6/2025"),
        ]

    def test_second_run_is_a_no_op(self, factory, reconciler, all_trackings):
        service = factory.service(factory.customer(), FY_2025)
        factory.resource(service, [(date(2025, 4, 1), None)])

        reconciler.backfill_missing_trackings()
        second = reconciler.backfill_missing_trackings()

        assert second.trackings_created == 0
        assert second.skip_reasons == {"AlreadyExists": 9}
        assert len(all_trackings()) == 9

    def test_completes_after_current_period_run(self, factory, reconciler, all_trackings):
        service = factory.service(factory.customer(), FY_2025)
        factory.resource(service, [(date(2025, 4, 1), None)])

        reconciler.create_current_period_trackings()
        summary = reconciler.backfill_missing_trackings()

        assert summary.trackings_created == 6
        assert summary.historical_trackings_created == 6
        assert len(all_trackings()) == 9

    def test_gap_between_activity_periods(self, factory, reconciler, all_trackings):
        service = factory.service(factory.customer(), FY_2025)
        factory.resource(service, [
            (date(2025, 4, 1), date(2025, 4, 30)),
            (date(2025, 6, 1), None),
        ])

        summary = reconciler.backfill_missing_trackings()

        assert summary.trackings_created == 6
        assert summary.skip_reasons == {"PeriodNotCovered": 1}
        assert {r.period for r in all_trackings()} == {4, 6}

    def test_quarterly_service(self, factory, session, actor_id, all_trackings):
        service = factory.service(factory.customer(), FY_2025, quarterly=True)
        factory.resource(service, [(date(2025, 5, 10), date(2025, 8, 20))])
        store = SqlTrackingStore(session, actor_id, retry_backoff_seconds=0)
        reconciler = TrackingReconciler(store, DeterministicClock.on(date(2025, 10, 15)))

        summary = reconciler.backfill_missing_trackings()

        assert summary.periods_checked == 3
        assert summary.trackings_created == 6
        assert summary.skip_reasons == {"PeriodNotCovered": 1}
        assert sorted({(r.year, r.period, r.schedule) for r in all_trackings()}) == [
            (2025, 1, "4/2025 - 6/2025"),
            (2025, 2, "7/2025 - 9/2025"),
        ]

    def test_quarterly_activity_not_started_yet(self, factory, session, actor_id, all_trackings):
        service = factory.service(factory.customer(), FY_2025, quarterly=True)
        factory.resource(service, [(date(2025, 6, 1), None)])
        store = SqlTrackingStore(session, actor_id, retry_backoff_seconds=0)
        reconciler = TrackingReconciler(store, DeterministicClock.on(date(2025, 4, 15)))

        summary = reconciler.backfill_missing_trackings()

        assert summary.periods_checked == 1
        assert summary.trackings_created == 0
        assert summary.skip_reasons == {"PeriodNotCovered": 1}
        assert all_trackings() == []

    def test_every_service_of_the_customer(self, factory, reconciler, all_trackings):
        customer = factory.customer()
        previous = factory.service(customer, date(2024, 4, 1))
        current = factory.service(customer, FY_2025)
        factory.resource(previous, [(date(2024, 4, 1), None)])
        factory.resource(current, [(date(2025, 4, 1), None)])

        summary = reconciler.backfill_missing_trackings()

        assert summary.services_processed == 2
        assert summary.trackings_created == 12 * 3 + 3 * 3
        years = Counter(r.year for r in all_trackings())
        assert years == {2024: 27, 2025: 18}

    def test_future_service_not_eligible(self, factory, reconciler, all_trackings):
        customer = factory.customer()
        factory.service(customer, date(2025, 9, 1))

        summary = reconciler.backfill_missing_trackings()

        assert summary.skip_reasons == {"NoEligibleService": 1}
        assert all_trackings() == []

    def test_customer_without_services(self, factory, reconciler):
        factory.customer()

        summary = reconciler.backfill_missing_trackings()

        assert summary.skip_reasons == {"NoServices": 1}
        assert summary.customers_skipped == 1

    def test_current_period_not_counted_as_historical(self, factory, reconciler):
        service = factory.service(factory.customer(), FY_2025)
        factory.resource(service, [(date(2025, 6, 1), None)])

        summary = reconciler.backfill_missing_trackings()

        assert summary.trackings_created == 3
        assert summary.historical_trackings_created == 0

    def test_stale_existence_check_cannot_duplicate(
        self, factory, session, clock, actor_id, all_trackings,
    ):
        """A concurrent writer that slipped in is rejected by the unique constraint."""
        service = factory.service(factory.customer(), FY_2025)
        resource = factory.resource(service, [(date(2025, 4, 1), None)])
        factory.tracking(resource, 2025, 5, ContentType.TRAINING, "5/2025")

        class BlindStore(SqlTrackingStore):
            def list_trackings_for_resources(self, resource_ids, year, period):
                return set()

        store = BlindStore(session, actor_id, retry_backoff_seconds=0)
        summary = TrackingReconciler(store, clock).backfill_missing_trackings()

        assert summary.status is RunStatus.PARTIALLY_COMPLETED
        assert summary.errors == 1
        assert summary.unit_errors[0].code == "TRACKING_CONFLICT"
        identities = _identities(all_trackings())
        assert len(identities) == len(set(identities)) == 1

    def test_uniqueness_after_all_operations(self, factory, reconciler, all_trackings):
        customer = factory.customer()
        monthly = factory.service(customer, FY_2025)
        quarterly = factory.service(factory.customer(), FY_2025, quarterly=True)
        for service in (monthly, quarterly):
            factory.resource(service, [(date(2025, 4, 1), date(2025, 4, 20)), (date(2025, 5, 15), None)])

        for _ in range(2):
            reconciler.create_current_period_trackings()
            reconciler.backfill_missing_trackings()
            reconciler.fix_schedule_labels()

        identities = _identities(all_trackings())
        assert len(identities) == len(set(identities))
        assert len(identities) == 3 * 3 + 1 * 3
