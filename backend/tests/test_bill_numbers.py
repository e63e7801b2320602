"""
Bill numbering tests.

Numbers are BILL-YYMMDD-NNNN, allocated by reading the latest bill of the
day and adding one. Serialized requests get consecutive numbers. Two
allocations that both read before either bill is inserted get the SAME
number; the unique constraint on bills.bill_number turns that into an
IntegrityError and bill creation reruns with a fresh number.
"""

from datetime import datetime

from station.extensions import db
from station.models import Bill
from station.services import billing_service, document_service
from station.services.document_service import format_bill_number, next_bill_number
from station.time_utils import utcnow


def _create(client, headers, service):
    resp = client.post("/api/bills", json={"services": [{"service": service.id}]}, headers=headers)
    assert resp.status_code == 201
    return resp.json["bill"]["bill_number"]


class TestFormat:

    def test_format(self):
        assert format_bill_number(datetime(2024, 5, 1), 7) == "BILL-240501-0007"

    def test_first_bill_of_day(self, db_session):
        today = utcnow()
        assert next_bill_number(today) == format_bill_number(today, 1)


class TestSequential:

    def test_serialized_requests_increase_by_one(self, client, staff_headers, make_service):
        service = make_service()
        numbers = [_create(client, staff_headers, service) for _ in range(4)]

        sequences = [int(n[-4:]) for n in numbers]
        assert sequences == [1, 2, 3, 4]
        prefix = f"BILL-{utcnow():%y%m%d}-"
        assert all(n.startswith(prefix) for n in numbers)

    def test_yesterdays_bills_do_not_continue_the_sequence(self, client, staff_headers, make_service, db_session):
        service = make_service()
        _create(client, staff_headers, service)
        bill = db_session.query(Bill).one()
        bill.created_at = datetime(2020, 1, 1, 12, 0)
        bill.bill_number = "BILL-200101-0042"
        db_session.commit()

        assert _create(client, staff_headers, service).endswith("-0001")


class TestCollisions:

    def test_unserialized_allocations_collide(self, db_session):
        """Both reads happen before any insert, so both get the same number."""
        first = next_bill_number()
        second = next_bill_number()
        assert first == second

    def test_collision_is_retried_with_a_fresh_number(self, client, staff_headers, make_service, monkeypatch, db_session):
        service = make_service()
        existing = _create(client, staff_headers, service)

        calls = []

        def stale_then_real(now=None):
            calls.append(now)
            if len(calls) == 1:
                # what a concurrent request would have read before `existing` was inserted
                return existing
            return document_service.next_bill_number(now)

        monkeypatch.setattr(billing_service, "next_bill_number", stale_then_real)

        second = _create(client, staff_headers, service)
        assert len(calls) == 2
        assert second != existing
        assert int(second[-4:]) == int(existing[-4:]) + 1
        assert db_session.query(Bill).count() == 2

    def test_persistent_collision_gives_up(self, client, staff_headers, make_service, monkeypatch, db_session):
        service = make_service()
        existing = _create(client, staff_headers, service)
        monkeypatch.setattr(billing_service, "next_bill_number", lambda now=None: existing)
        monkeypatch.setattr("station.services.concurrency.time.sleep", lambda s: None)

        resp = client.post("/api/bills", json={"services": [{"service": service.id}]}, headers=staff_headers)
        assert resp.status_code == 500
        assert resp.json == {"error": "Internal server error"}
        assert db.session.query(Bill).count() == 1


class TestNumberMatchesTimestamp:

    def test_number_and_created_at_share_one_clock_read(self, client, staff_headers, make_service, monkeypatch):
        service = make_service()
        monkeypatch.setattr(billing_service, "utcnow", lambda: datetime(2024, 5, 1, 23, 59, 59))

        resp = client.post("/api/bills", json={"services": [{"service": service.id}]}, headers=staff_headers)
        assert resp.status_code == 201
        bill = resp.json["bill"]
        assert bill["bill_number"] == "BILL-240501-0001"
        assert bill["created_at"] == "2024-05-01T23:59:59Z"
