"""
Numbering sequencer tests.

Verifies:
- Lazy counter creation starts at 1
- Reservations never commit on their own
- Rolled-back reservations do not consume numbers
- Admin override refuses to re-issue numbers, even when an issue races it
"""

import pytest

from tradeflow.extensions import db
from tradeflow.models import DocumentSequence
from tradeflow.money import Money
from tradeflow.services import sequence_service
from tradeflow.services.document_service import create_document
from tradeflow.validation import ConflictError, ValidationError

from conftest import existing_customer, make_items


def _stored_next(business_id, counter_name):
    return (
        db.session.query(DocumentSequence.next_value)
        .filter_by(business_id=business_id, counter_name=counter_name)
        .scalar()
    )


class TestReserveNext:
    def test_first_reservation_creates_counter(self, db_session, business):
        assert sequence_service.peek_next(business.id, "invoice") == 1

        assert sequence_service.reserve_next(business.id, "invoice") == 1
        db_session.commit()

        assert _stored_next(business.id, "invoice") == 2
        assert sequence_service.peek_next(business.id, "invoice") == 2

    def test_reservations_are_consecutive(self, db_session, business):
        values = [sequence_service.reserve_next(business.id, "quote") for _ in range(5)]
        db_session.commit()
        assert values == [1, 2, 3, 4, 5]

    def test_counters_are_independent(self, db_session, business, other_business):
        assert sequence_service.reserve_next(business.id, "invoice") == 1
        assert sequence_service.reserve_next(business.id, "invoice") == 2
        assert sequence_service.reserve_next(business.id, "quote") == 1
        assert sequence_service.reserve_next(other_business.id, "invoice") == 1
        db_session.commit()

    def test_counter_at_seven_hands_out_seven(self, db_session, business):
        db_session.add(DocumentSequence(business_id=business.id, counter_name="certificate", next_value=7))
        db_session.commit()

        assert sequence_service.reserve_next(business.id, "certificate") == 7
        db_session.commit()
        assert _stored_next(business.id, "certificate") == 8

    def test_rollback_releases_reservation(self, db_session, business):
        db_session.add(DocumentSequence(business_id=business.id, counter_name="invoice", next_value=7))
        db_session.commit()

        assert sequence_service.reserve_next(business.id, "invoice") == 7
        db_session.rollback()

        assert _stored_next(business.id, "invoice") == 7
        assert sequence_service.reserve_next(business.id, "invoice") == 7
        db_session.commit()

    def test_rejects_unknown_counter(self, db_session, business):
        with pytest.raises(ValidationError):
            sequence_service.reserve_next(business.id, "receipt")


class TestSetNextValue:
    def test_sets_value_for_unused_counter(self, db_session, business):
        seq = sequence_service.set_next_value(business.id, "quote", 1001)
        assert seq.next_value == 1001
        assert sequence_service.reserve_next(business.id, "quote") == 1001
        db_session.commit()

    @pytest.mark.parametrize("value", [0, -5, "10", True])
    def test_rejects_invalid_values(self, db_session, business, value):
        with pytest.raises(ValidationError):
            sequence_service.set_next_value(business.id, "quote", value)

    def test_refuses_to_reissue_numbers(self, db_session, business, customer):
        for _ in range(3):
            create_document(business.id, "invoice", make_items(), 0, Money.zero(), existing_customer(customer))

        with pytest.raises(ConflictError):
            sequence_service.set_next_value(business.id, "invoice", 3)

        sequence_service.set_next_value(business.id, "invoice", 4)
        assert sequence_service.peek_next(business.id, "invoice") == 4

    def test_issue_between_check_and_write_is_not_reissued(self, db_session, business, customer, monkeypatch):
        for _ in range(5):
            create_document(business.id, "invoice", make_items(), 0, Money.zero(), existing_customer(customer))

        check_highest = sequence_service._highest_allocated
        raced = []

        def highest_then_issue(business_id, counter_name):
            highest = check_highest(business_id, counter_name)
            if not raced:
                raced.append(create_document(
                    business.id, "invoice", make_items(), 0, Money.zero(), existing_customer(customer),
                ))
            return highest

        monkeypatch.setattr(sequence_service, "_highest_allocated", highest_then_issue)
        with pytest.raises(ConflictError) as exc:
            sequence_service.set_next_value(business.id, "invoice", 6)
        monkeypatch.undo()

        assert exc.value.details["highest_allocated"] == 6
        assert raced[0].sequence_number == 6
        assert sequence_service.peek_next(business.id, "invoice") == 7

        document = create_document(business.id, "invoice", make_items(), 0, Money.zero(), existing_customer(customer))
        assert document.sequence_number == 7


def test_list_counters_includes_unused(db_session, business):
    sequence_service.reserve_next(business.id, "job")
    db_session.commit()

    counters = {c["counter_name"]: c for c in sequence_service.list_counters(business.id)}
    assert set(counters) == {"invoice", "quote", "certificate", "job"}
    assert counters["job"]["next_value"] == 2
    assert counters["invoice"]["next_value"] == 1
    assert counters["invoice"]["updated_at"] is None
