"""
Tests for TrackingReconciler.create_current_period_trackings against the
SQLite-backed store.
"""

from datetime import date

from tracking_kernel.domain.clock import DeterministicClock
from tracking_kernel.domain.types import ContentType, ProposalStatus
from tracking_reconcile.reconciler import TrackingReconciler
from tracking_reconcile.summary import RunStatus

FY_2025 = date(2025, 4, 1)


class TestCreateCurrentPeriod:

    def test_creates_three_draft_trackings(self, factory, reconciler, all_trackings):
        customer = factory.customer()
        service = factory.service(customer, FY_2025)
        resource = factory.resource(service, [(date(2025, 4, 1), None)])

        summary = reconciler.create_current_period_trackings()

        assert summary.status is RunStatus.COMPLETED
        assert summary.trackings_created == 3
        assert summary.customers_processed == 1
        assert summary.services_processed == 1
        assert summary.resources_processed == 1
        assert summary.created_by_content_type == {
            "Evidence": 1, "Training": 1, "Absence": 1,
        }

        rows = all_trackings()
        assert len(rows) == 3
        assert {r.content_type for r in rows} == {"Evidence", "Training", "Absence"}
        for row in rows:
            assert row.resource_id == resource.id
            assert (row.year, row.period) == (2025, 6)
            assert row.schedule == "6/2025"
            assert row.approve_status == "Draft"

    def test_second_run_creates_nothing(self, factory, reconciler, all_trackings):
        customer = factory.customer()
        service = factory.service(customer, FY_2025)
        factory.resource(service, [(date(2025, 4, 1), None)])

        reconciler.create_current_period_trackings()
        summary = reconciler.create_current_period_trackings()

        assert summary.trackings_created == 0
        assert summary.skip_reasons == {"AlreadyExists": 3}
        assert summary.trackings_skipped == 3
        assert len(all_trackings()) == 3

    def test_fills_only_missing_content_types(self, factory, reconciler, all_trackings):
        customer = factory.customer()
        service = factory.service(customer, FY_2025)
        resource = factory.resource(service, [(date(2025, 4, 1), None)])
        factory.tracking(resource, 2025, 6, ContentType.EVIDENCE, "6/2025")

        summary = reconciler.create_current_period_trackings()

        assert summary.trackings_created == 2
        assert summary.skip_reasons == {"AlreadyExists": 1}
        assert len(all_trackings()) == 3

    def test_uncovered_resource_skipped(self, factory, reconciler, all_trackings):
        customer = factory.customer()
        service = factory.service(customer, FY_2025)
        factory.resource(service, [(date(2025, 4, 1), date(2025, 5, 31))])

        summary = reconciler.create_current_period_trackings()

        assert summary.trackings_created == 0
        assert summary.resources_skipped == 1
        assert summary.skip_reasons == {"NotInActivePeriod": 1}
        assert summary.status is RunStatus.COMPLETED
        assert all_trackings() == []

    def test_resource_without_activity_periods(self, factory, reconciler):
        customer = factory.customer()
        service = factory.service(customer, FY_2025)
        factory.resource(service, [])

        summary = reconciler.create_current_period_trackings()

        assert summary.skip_reasons == {"NoActivityPeriods": 1}
        assert summary.errors == 0

    def test_terminal_statuses_excluded(self, factory, reconciler, all_trackings):
        customer = factory.customer()
        service = factory.service(customer, FY_2025)
        factory.resource(service, [(date(2025, 4, 1), None)], status=ProposalStatus.REJECTED)
        factory.resource(service, [(date(2025, 4, 1), None)], status=ProposalStatus.DISMISSAL)

        summary = reconciler.create_current_period_trackings()

        assert summary.resources_processed == 0
        assert summary.services_processed == 1
        assert all_trackings() == []

    def test_customer_without_service_skipped(self, factory, reconciler):
        factory.customer()

        summary = reconciler.create_current_period_trackings()

        assert summary.customers_skipped == 1
        assert summary.customers_processed == 0
        assert summary.skip_reasons == {"NoActiveService": 1}

    def test_service_older_than_a_year_is_not_current(self, factory, reconciler):
        customer = factory.customer()
        factory.service(customer, date(2024, 4, 1))

        summary = reconciler.create_current_period_trackings()

        assert summary.skip_reasons == {"NoActiveService": 1}

    def test_month_outside_fiscal_year_skips_customer(self, factory, reconciler):
        # Starts within the last year, but June 2025 is its 13th month
        customer = factory.customer()
        service = factory.service(customer, date(2024, 6, 20))
        factory.resource(service, [(date(2024, 6, 20), None)])

        summary = reconciler.create_current_period_trackings()

        assert summary.skip_reasons == {"OutsideFiscalYear": 1}
        assert summary.customers_skipped == 1

    def test_latest_service_wins(self, factory, reconciler, all_trackings):
        customer = factory.customer()
        old = factory.service(customer, date(2024, 9, 1))
        new = factory.service(customer, FY_2025)
        factory.resource(old, [(date(2024, 9, 1), None)])
        current = factory.resource(new, [(date(2025, 4, 1), None)])

        reconciler.create_current_period_trackings()

        assert {r.resource_id for r in all_trackings()} == {current.id}

    def test_quarterly_partial_coverage(self, factory, reconciler, all_trackings):
        customer = factory.customer()
        service = factory.service(customer, FY_2025, quarterly=True)
        factory.resource(service, [(date(2025, 5, 10), date(2025, 5, 20))])

        summary = reconciler.create_current_period_trackings()

        assert summary.trackings_created == 3
        rows = all_trackings()
        assert {(r.year, r.period, r.schedule) for r in rows} == {
            (2025, 1, "4/2025 - 6/2025"),
        }

    def test_quarterly_activity_not_started_yet(self, factory, store, all_trackings):
        service = factory.service(factory.customer(), FY_2025, quarterly=True)
        factory.resource(service, [(date(2025, 6, 1), None)])
        reconciler = TrackingReconciler(store, DeterministicClock.on(date(2025, 4, 15)))

        summary = reconciler.create_current_period_trackings()

        assert summary.trackings_created == 0
        assert summary.skip_reasons == {"NotInActivePeriod": 1}
        assert all_trackings() == []

    def test_monthly_activity_starting_later_this_month(self, factory, reconciler, all_trackings):
        service = factory.service(factory.customer(), FY_2025)
        factory.resource(service, [(date(2025, 6, 20), None)])

        summary = reconciler.create_current_period_trackings()

        assert summary.trackings_created == 0
        assert summary.resources_skipped == 1
        assert all_trackings() == []

    def test_restricted_content_types(self, factory, store, clock, all_trackings):
        customer = factory.customer()
        service = factory.service(customer, FY_2025)
        factory.resource(service, [(date(2025, 4, 1), None)])

        reconciler = TrackingReconciler(store, clock, content_types=[ContentType.EVIDENCE])
        summary = reconciler.create_current_period_trackings()

        assert summary.trackings_created == 1
        assert [r.content_type for r in all_trackings()] == ["Evidence"]

    def test_many_customers_processed(self, factory, reconciler, all_trackings):
        for _ in range(3):
            service = factory.service(factory.customer(), FY_2025)
            factory.resource(service, [(date(2025, 4, 1), None)])
            factory.resource(service, [(date(2025, 6, 10), None)])

        summary = reconciler.create_current_period_trackings()

        assert summary.customers_processed == 3
        assert summary.resources_processed == 6
        assert summary.trackings_created == 18
        assert len(all_trackings()) == 18

    def test_logs_historical_bucket(self, factory, reconciler, captured_logs):
        customer = factory.customer()
        service = factory.service(customer, FY_2025)
        factory.resource(service, [(date(2025, 4, 1), None)])

        reconciler.create_current_period_trackings()

        buckets = [r for r in captured_logs() if r["message"] == "historical_bucket_resolved"]
        assert len(buckets) == 1
        assert buckets[0]["label"] == "4/2025 - 6/2025"
        assert buckets[0]["group_number"] == 1

    def test_run_context_in_logs(self, factory, reconciler, captured_logs):
        factory.customer()

        reconciler.create_current_period_trackings()

        started = [r for r in captured_logs() if r["message"] == "reconciliation_run_started"]
        assert started[0]["job_name"] == "create_current_period_trackings"
        assert started[0]["run_id"]
