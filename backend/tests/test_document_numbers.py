"""
Sequential document number tests.

Numbers are allocated inside one transaction per call: never reused,
periodic counters restart at 001 when the period changes, and nothing is
allocated while offline.
"""

from datetime import date

import pytest
from sqlalchemy.exc import OperationalError

from stocksync.errors import CounterTransactionFailure, OfflineRejection, ValidationError
from stocksync.services.document_numbers import (
    COUNTERS_COLLECTION,
    CUSTOMER_COUNTER,
    SALES_ORDER_COUNTER,
    format_number,
    monthly_period,
)


class TestFormatting:
    def test_monthly_period_is_two_digit_year_and_month(self):
        assert monthly_period(date(2025, 1, 15)) == "2501"
        assert monthly_period("2024-12-31T23:00:00Z") == "2412"

    def test_format_number_pads_to_three_digits(self):
        assert format_number("CUS", 7) == "CUS-007"
        assert format_number("SO", 12, "2501") == "SO-2501-012"
        assert format_number("SO", 1234, "2501") == "SO-2501-1234"

    def test_invalid_date_rejected(self):
        with pytest.raises(ValueError):
            monthly_period("not-a-date")


class TestNonPeriodicCounters:
    def test_numbers_increase_by_one(self, services):
        numbers = [services.numbers.generate(CUSTOMER_COUNTER, prefix="CUS") for _ in range(3)]
        assert numbers == ["CUS-001", "CUS-002", "CUS-003"]
        assert services.numbers.peek(CUSTOMER_COUNTER)["currentId"] == 3

    def test_many_allocations_are_unique(self, services):
        numbers = [services.numbers.generate("testCounter", prefix="T") for _ in range(25)]
        assert len(set(numbers)) == 25
        assert numbers[-1] == "T-025"

    def test_counters_are_independent(self, services):
        services.numbers.generate(CUSTOMER_COUNTER, prefix="CUS")
        services.numbers.generate(CUSTOMER_COUNTER, prefix="CUS")
        assert services.numbers.generate("supplierCounter", prefix="SUP") == "SUP-001"


class TestPeriodicCounters:
    def test_same_period_continues(self, services):
        first = services.numbers.generate(
            SALES_ORDER_COUNTER, prefix="SO", period_fn=monthly_period, on="2025-01-03",
        )
        second = services.numbers.generate(
            SALES_ORDER_COUNTER, prefix="SO", period_fn=monthly_period, on="2025-01-28",
        )
        assert (first, second) == ("SO-2501-001", "SO-2501-002")

    def test_new_period_resets_to_one(self, services):
        for _ in range(4):
            services.numbers.generate(SALES_ORDER_COUNTER, prefix="SO", period_fn=monthly_period, on="2025-01-10")
        number = services.numbers.generate(
            SALES_ORDER_COUNTER, prefix="SO", period_fn=monthly_period, on="2025-02-01",
        )
        assert number == "SO-2502-001"
        counter = services.numbers.peek(SALES_ORDER_COUNTER)
        assert counter["currentCount"] == 1
        assert counter["lastResetPeriod"] == "2502"

    def test_invalid_document_date_rejected(self, services):
        with pytest.raises(ValidationError):
            services.numbers.generate(SALES_ORDER_COUNTER, prefix="SO", period_fn=monthly_period, on="31/01/2025")
        assert services.numbers.peek(SALES_ORDER_COUNTER) is None


class TestFailures:
    def test_offline_rejects_before_touching_counter(self, services):
        services.connectivity.go_offline()
        with pytest.raises(OfflineRejection) as exc:
            services.numbers.generate(CUSTOMER_COUNTER, prefix="CUS")
        assert "Please go Online first" in exc.value.message
        assert services.store.get(services.connectivity.tenant_id, COUNTERS_COLLECTION, CUSTOMER_COUNTER) is None

    def test_transaction_failure_is_reported_and_nothing_allocated(self, services, monkeypatch):
        def broken(tenant_id, fn):
            raise OperationalError("UPDATE stored_documents", {}, Exception("database is locked"))

        monkeypatch.setattr(services.store, "run_transaction", broken)
        with pytest.raises(CounterTransactionFailure) as exc:
            services.numbers.generate(CUSTOMER_COUNTER, prefix="CUS", label="customer ID")
        assert exc.value.message == "Could not generate a new customer ID number. Please try again."
        monkeypatch.undo()
        assert services.numbers.generate(CUSTOMER_COUNTER, prefix="CUS") == "CUS-001"

    def test_failed_document_write_does_not_burn_a_number(self, services, monkeypatch):
        """create_numbered allocates and writes in one transaction."""
        from stocksync.services import document_numbers

        real_allocate = document_numbers.allocate_number

        def allocate_then_fail(tx, counter_name, **kwargs):
            real_allocate(tx, counter_name, **kwargs)
            raise ValidationError("document body rejected")

        monkeypatch.setattr(document_numbers, "allocate_number", allocate_then_fail)
        with pytest.raises(ValidationError):
            services.numbers.create_numbered(
                "customers", {"name": "X"},
                number_field="displayId", counter_name=CUSTOMER_COUNTER, prefix="CUS",
            )
        monkeypatch.undo()

        assert services.numbers.peek(CUSTOMER_COUNTER) is None
        doc_id, number = services.numbers.create_numbered(
            "customers", {"name": "X"},
            number_field="displayId", counter_name=CUSTOMER_COUNTER, prefix="CUS",
        )
        assert number == "CUS-001"
        assert services.customers.find(doc_id)["displayId"] == "CUS-001"
