from datetime import datetime

import pytest

from tradeflow.models import Job
from tradeflow.money import Money
from tradeflow.services import job_service
from tradeflow.services.snapshot_service import CustomerForm, NewCustomer
from tradeflow.time_utils import utcnow
from tradeflow.validation import InvalidStatus, MissingRequiredField

from conftest import existing_customer


SCHEDULED = datetime(2026, 4, 2, 9, 0)


def test_job_reference_is_year_scoped(db_session, business, customer):
    first = job_service.create_job(business.id, "Boiler service", existing_customer(customer), SCHEDULED)
    second = job_service.create_job(
        business.id, "Radiator bleed", existing_customer(customer), SCHEDULED, price=Money(4500),
    )

    year = utcnow().year
    assert first.reference == f"TF-{year}-0001"
    assert second.reference == f"TF-{year}-0002"
    assert second.price_pence == 4500
    assert first.customer_snapshot["name"] == "Jane Customer"


def test_quick_entry_only_needs_a_name(db_session, business):
    job = job_service.create_job(
        business.id,
        "Leaking tap",
        NewCustomer(form=CustomerForm(name="Walk-in")),
        SCHEDULED,
        quick_entry=True,
        quick_address="Flat 1, Mill Lane",
    )
    assert job.customer_snapshot["address"] == "Flat 1, Mill Lane"
    assert job.customer.address == "Flat 1, Mill Lane"


def test_rejected_job_does_not_consume_number(db_session, business, customer):
    with pytest.raises(MissingRequiredField):
        job_service.create_job(business.id, "Leaking tap", NewCustomer(form=CustomerForm(name="Walk-in")), SCHEDULED)
    with pytest.raises(MissingRequiredField):
        job_service.create_job(business.id, "  ", existing_customer(customer), SCHEDULED)

    job = job_service.create_job(business.id, "Leaking tap", existing_customer(customer), SCHEDULED)
    assert job.sequence_number == 1
    assert db_session.query(Job).count() == 1


def test_update_job_status(db_session, business, customer):
    job = job_service.create_job(business.id, "Boiler service", existing_customer(customer), SCHEDULED)

    assert job_service.update_job_status(job.id, "complete").status == "complete"
    assert job_service.update_job_status(job.id, "invoiced").status == "invoiced"
    with pytest.raises(InvalidStatus):
        job_service.update_job_status(job.id, "Paid")
