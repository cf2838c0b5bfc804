"""
Document service tests.

Verifies:
- Issued documents carry the reserved number, reference and totals
- Rejected requests never advance the counter or leave rows behind
- Issued documents are immutable apart from status
- Per-class status vocabularies
"""

from datetime import datetime, timedelta
from decimal import Decimal

import pytest

from tradeflow.extensions import db
from tradeflow.models import Customer, Document, DocumentLine, DocumentSequence, Job
from tradeflow.money import Money
from tradeflow.services import document_service
from tradeflow.services.document_service import create_document, update_document_status
from tradeflow.services.job_service import create_job
from tradeflow.services.snapshot_service import parse_locked_payload
from tradeflow.services.totals_service import LineItem
from tradeflow.validation import (
    EmptyLineItems,
    ImmutableDocumentError,
    InvalidAmount,
    InvalidDiscount,
    InvalidStatus,
    MissingRequiredField,
    NotFoundError,
    ValidationError,
)

from conftest import certificate_content, existing_customer, make_items, new_customer


ISSUED = datetime(2026, 3, 1, 10, 0, 0)


def _counter(business_id, name):
    return (
        db.session.query(DocumentSequence.next_value)
        .filter_by(business_id=business_id, counter_name=name)
        .scalar()
    )


def _seed_counter(db_session, business_id, name, next_value):
    db_session.add(DocumentSequence(business_id=business_id, counter_name=name, next_value=next_value))
    db_session.commit()


class TestCreateInvoice:
    def test_invoice_gets_number_reference_and_totals(self, db_session, business, customer):
        document = create_document(
            business.id, "invoice", make_items(), Decimal("10"), Money.zero(),
            existing_customer(customer), issued_at=ISSUED,
        )

        assert document.sequence_number == 1
        assert document.reference == "INV-2026-0001"
        assert document.status == "Unpaid"
        assert document.expiry_at == ISSUED + timedelta(days=14)
        assert document.subtotal_pence == 12000
        assert document.tax_total_pence == 1980
        assert document.discount_pence == 1200
        assert document.grand_total_pence == 12780
        assert document.balance_due_pence == 12780
        assert [line.position for line in document.lines] == [1, 2, 3]
        assert document.lines[0].line_total_pence == 10000
        assert document.customer_snapshot["name"] == "Jane Customer"
        assert document.locked_payload is None

    def test_quote_defaults(self, db_session, business, customer):
        quote = create_document(
            business.id, "quote", make_items(), "0", Money.zero(), existing_customer(customer), issued_at=ISSUED,
        )
        assert quote.reference == "Q-2026-0001"
        assert quote.status == "Sent"
        assert quote.expiry_at == ISSUED + timedelta(days=30)

    def test_draft(self, db_session, business, customer):
        invoice = create_document(
            business.id, "invoice", make_items(), "0", Money.zero(), existing_customer(customer), draft=True,
        )
        assert invoice.status == "Draft"

    def test_invoice_and_quote_numbered_separately(self, db_session, business, customer):
        first = create_document(business.id, "invoice", make_items(), "0", Money.zero(), existing_customer(customer))
        quote = create_document(business.id, "quote", make_items(), "0", Money.zero(), existing_customer(customer))
        second = create_document(business.id, "invoice", make_items(), "0", Money.zero(), existing_customer(customer))
        assert (first.sequence_number, quote.sequence_number, second.sequence_number) == (1, 1, 2)

    def test_new_customer_saved_with_document(self, db_session, business):
        document = create_document(
            business.id, "invoice", make_items(), "0", Money.zero(), new_customer(),
        )
        assert document.customer_id is not None
        saved = db.session.get(Customer, document.customer_id)
        assert saved.name == "J. Doe"
        assert document.customer_snapshot["postal_code"] == "YO1 7HH"

    def test_partial_payment_reduces_balance(self, db_session, business, customer):
        document = create_document(
            business.id, "invoice", make_items(), "0", Money(20000), existing_customer(customer),
        )
        assert document.grand_total_pence == 14200
        assert document.balance_due_pence == -5800

    def test_raised_from_job(self, db_session, business, customer):
        job = create_job(business.id, "Boiler service", existing_customer(customer), ISSUED)
        document = create_document(
            business.id, "invoice", make_items(), "0", Money.zero(), existing_customer(customer),
            job_id=job.id,
        )

        assert document.job_id == job.id
        assert document.job_address == {
            "address_line_1": "22 Acacia Avenue",
            "city": "Leeds",
            "postcode": "LS1 4AB",
            "address": "22 Acacia Avenue, Leeds, LS1 4AB",
        }
        assert db.session.get(Job, job.id).documents == [document]
        assert document.to_dict()["job_id"] == job.id

    def test_counter_at_seven(self, db_session, business, customer):
        _seed_counter(db_session, business.id, "invoice", 7)

        document = create_document(
            business.id, "invoice", make_items(), "0", Money.zero(), existing_customer(customer), issued_at=ISSUED,
        )

        assert document.sequence_number == 7
        assert document.reference == "INV-2026-0007"
        assert _counter(business.id, "invoice") == 8


class TestRejectedRequests:
    @pytest.fixture(autouse=True)
    def counter_at_seven(self, db_session, business):
        _seed_counter(db_session, business.id, "invoice", 7)

    def _assert_untouched(self, business):
        assert _counter(business.id, "invoice") == 7
        assert db.session.query(Document).count() == 0
        assert db.session.query(DocumentLine).count() == 0

    def test_no_items(self, business, customer):
        with pytest.raises(EmptyLineItems):
            create_document(business.id, "invoice", [], "0", Money.zero(), existing_customer(customer))
        self._assert_untouched(business)

    def test_only_blank_descriptions(self, business, customer):
        items = [LineItem("", Decimal("1"), Money(100))]
        with pytest.raises(EmptyLineItems):
            create_document(business.id, "invoice", items, "0", Money.zero(), existing_customer(customer))
        self._assert_untouched(business)

    def test_bad_discount(self, business, customer):
        with pytest.raises(InvalidDiscount):
            create_document(business.id, "invoice", make_items(), "150", Money.zero(), existing_customer(customer))
        self._assert_untouched(business)

    def test_missing_customer_fields(self, business):
        with pytest.raises(MissingRequiredField):
            create_document(
                business.id, "invoice", make_items(), "0", Money.zero(), new_customer(postal_code=""),
            )
        self._assert_untouched(business)
        assert db.session.query(Customer).count() == 0

    def test_unknown_customer(self, business):
        from tradeflow.services.snapshot_service import ExistingCustomer
        with pytest.raises(NotFoundError):
            create_document(business.id, "invoice", make_items(), "0", Money.zero(), ExistingCustomer(999))
        self._assert_untouched(business)

    def test_unknown_class(self, business, customer):
        with pytest.raises(ValidationError):
            create_document(business.id, "receipt", make_items(), "0", Money.zero(), existing_customer(customer))
        self._assert_untouched(business)

    def test_amount_above_ceiling(self, app, business, customer):
        app.config["MONEY_MAX_PENCE"] = 100_000
        try:
            with pytest.raises(InvalidAmount) as exc:
                create_document(
                    business.id, "invoice", [LineItem("Boiler", Decimal("3"), Money(50_000))], "0",
                    Money.zero(), existing_customer(customer),
                )
        finally:
            app.config["MONEY_MAX_PENCE"] = 100_000_000_000
        assert exc.value.details["field"] == "items[0]"
        self._assert_untouched(business)

    def test_job_from_another_business(self, business, other_business, customer):
        other_customer = Customer(business_id=other_business.id, name="Other", address="2 Side St")
        db.session.add(other_customer)
        db.session.commit()
        job = create_job(other_business.id, "Service", existing_customer(other_customer), ISSUED)

        with pytest.raises(NotFoundError):
            create_document(
                business.id, "invoice", make_items(), "0", Money.zero(), existing_customer(customer),
                job_id=job.id,
            )
        self._assert_untouched(business)

    def test_success_after_failure_uses_same_number(self, business, customer):
        with pytest.raises(InvalidDiscount):
            create_document(business.id, "invoice", make_items(), "-1", Money.zero(), existing_customer(customer))
        document = create_document(
            business.id, "invoice", make_items(), "0", Money.zero(), existing_customer(customer),
        )
        assert document.sequence_number == 7
        assert _counter(business.id, "invoice") == 8


class TestCertificates:
    def test_certificate_locks_payload(self, db_session, business, preparer, customer):
        cert = create_document(
            business.id, "certificate", [], "0", Money.zero(), existing_customer(customer),
            preparer_id=preparer.id, certificate_content=certificate_content(), issued_at=ISSUED,
        )

        assert cert.reference == "CP12-2026-0001"
        assert cert.status == "Issued"
        assert cert.expiry_at == ISSUED + timedelta(days=365)
        payload = parse_locked_payload(cert.locked_payload, cert.locked_payload_sha256)
        assert payload.business_profile.name == "Acme Heating Ltd"
        assert payload.preparer.display_name == "Sam Engineer"
        assert payload.content["property_address"].startswith("Flat 2")

    def test_next_due_date_sets_expiry(self, db_session, business, preparer, customer):
        cert = create_document(
            business.id, "certificate", [], "0", Money.zero(), existing_customer(customer),
            preparer_id=preparer.id, certificate_content=certificate_content(next_due_date="2027-02-28"),
        )
        assert cert.expiry_at == datetime(2027, 2, 28)

    def test_landlord_defaults_to_customer(self, db_session, business, preparer, customer):
        content = certificate_content()
        del content["landlord"]
        cert = create_document(
            business.id, "certificate", [], "0", Money.zero(), existing_customer(customer),
            preparer_id=preparer.id, certificate_content=content,
        )
        payload = parse_locked_payload(cert.locked_payload)
        assert payload.content["landlord"]["name"] == "Jane Customer"
        assert payload.content["landlord"]["postcode"] == "LS1 4AB"

    def test_requires_preparer(self, db_session, business, customer):
        with pytest.raises(MissingRequiredField):
            create_document(
                business.id, "certificate", [], "0", Money.zero(), existing_customer(customer),
                certificate_content=certificate_content(),
            )
        assert _counter(business.id, "certificate") is None

    def test_incomplete_content(self, db_session, business, preparer, customer):
        with pytest.raises(MissingRequiredField):
            create_document(
                business.id, "certificate", [], "0", Money.zero(), existing_customer(customer),
                preparer_id=preparer.id, certificate_content=certificate_content(appliances=[]),
            )
        assert _counter(business.id, "certificate") is None

    def test_cannot_be_draft(self, db_session, business, preparer, customer):
        with pytest.raises(InvalidStatus):
            create_document(
                business.id, "certificate", [], "0", Money.zero(), existing_customer(customer),
                preparer_id=preparer.id, certificate_content=certificate_content(), draft=True,
            )

    @pytest.mark.parametrize(
        "items,partial_payment",
        [
            ([LineItem("Call-out", Decimal("1"), Money(6000))], Money.zero()),
            ([], Money(500)),
        ],
    )
    def test_certificates_carry_no_charges(self, db_session, business, preparer, customer, items, partial_payment):
        with pytest.raises(ValidationError):
            create_document(
                business.id, "certificate", items, "0", partial_payment, existing_customer(customer),
                preparer_id=preparer.id, certificate_content=certificate_content(),
            )
        assert _counter(business.id, "certificate") is None


class TestImmutability:
    @pytest.fixture
    def invoice(self, db_session, business, customer):
        return create_document(business.id, "invoice", make_items(), "0", Money.zero(), existing_customer(customer))

    @pytest.mark.parametrize(
        "field,value",
        [
            ("grand_total_pence", 1),
            ("sequence_number", 99),
            ("reference", "INV-1999-0001"),
            ("customer_snapshot", {"name": "Someone else"}),
            ("job_address", {"address_line_1": "Elsewhere"}),
        ],
    )
    def test_frozen_fields(self, db_session, invoice, field, value):
        setattr(invoice, field, value)
        with pytest.raises(ImmutableDocumentError):
            db_session.commit()
        db_session.rollback()

    def test_line_items_cannot_change(self, db_session, invoice):
        invoice.lines[0].unit_price_pence = 1
        with pytest.raises(ImmutableDocumentError):
            db_session.commit()
        db_session.rollback()

    def test_line_items_cannot_be_deleted(self, db_session, invoice):
        db_session.delete(invoice.lines[0])
        with pytest.raises(ImmutableDocumentError):
            db_session.commit()
        db_session.rollback()


class TestStatus:
    def test_invoice_paid(self, db_session, business, customer):
        invoice = create_document(business.id, "invoice", make_items(), "0", Money.zero(), existing_customer(customer))
        updated = update_document_status(invoice.id, "Paid")
        assert updated.status == "Paid"
        assert updated.grand_total_pence == 14200

    def test_status_outside_vocabulary(self, db_session, business, customer):
        quote = create_document(business.id, "quote", make_items(), "0", Money.zero(), existing_customer(customer))
        with pytest.raises(InvalidStatus):
            update_document_status(quote.id, "Paid")
        assert document_service.get_document(quote.id).status == "Sent"

    def test_certificate_void_is_terminal(self, db_session, business, preparer, customer):
        cert = create_document(
            business.id, "certificate", [], "0", Money.zero(), existing_customer(customer),
            preparer_id=preparer.id, certificate_content=certificate_content(),
        )
        with pytest.raises(InvalidStatus):
            update_document_status(cert.id, "Paid")

        update_document_status(cert.id, "Void")
        with pytest.raises(InvalidStatus):
            update_document_status(cert.id, "Issued")

    def test_unknown_document(self, db_session):
        with pytest.raises(NotFoundError):
            update_document_status(12345, "Paid")


class TestListDocuments:
    def test_filters_and_pages(self, db_session, business, customer, other_business):
        for _ in range(3):
            create_document(business.id, "invoice", make_items(), "0", Money.zero(), existing_customer(customer))
        create_document(business.id, "quote", make_items(), "0", Money.zero(), existing_customer(customer))

        documents, total = document_service.list_documents(business.id, document_class="invoice", limit=2)
        assert total == 3
        assert len(documents) == 2

        _, total = document_service.list_documents(business.id)
        assert total == 4
        _, total = document_service.list_documents(other_business.id)
        assert total == 0


class TestParsing:
    def test_parse_line_items(self, app):
        items = document_service.parse_line_items([
            {"description": "Labour", "quantity": "1.5", "unit_price": "45.00", "tax_percent": "20"},
            {"description": "Parts", "quantity": 2, "unit_price": 3},
        ])
        assert items[0].unit_price.minor == 4500
        assert items[0].quantity == Decimal("1.5")
        assert items[1].tax_percent == Decimal("0")

    @pytest.mark.parametrize(
        "entry",
        [
            {"description": "x", "quantity": "1.0001", "unit_price": "1"},
            {"description": "x", "quantity": "1", "unit_price": "1.001"},
            {"description": "x", "quantity": "1", "unit_price": "1", "tax_percent": "20.125"},
            {"description": "x", "quantity": "-1", "unit_price": "1"},
            {"description": "x", "unit_price": "1"},
            {"description": "x", "quantity": "1000000000", "unit_price": "1"},
            {"description": "x", "quantity": "1", "unit_price": "100000000000000000000"},
        ],
    )
    def test_parse_line_items_rejects(self, app, entry):
        with pytest.raises(InvalidAmount):
            document_service.parse_line_items([entry])

    def test_parse_discount(self, app):
        assert document_service.parse_discount(None) == Decimal("0")
        assert document_service.parse_discount("12.5") == Decimal("12.5")
        with pytest.raises(InvalidDiscount):
            document_service.parse_discount("abc")
