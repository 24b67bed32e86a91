from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from payreq.core.exceptions import (
    Forbidden, ImmutableInCurrentStatus, InvalidStatusTransition, NotFound, ValidationError,
)
from payreq.core.permissions import LegacyRole
from payreq.models import ExpenseCategory, ExpenseRequestStatus, Notification
from payreq.schemas import ExpenseRequestCreate, ExpenseRequestUpdate
from payreq.services.expense_request_service import (
    ExpenseRequestService, convert_to_base, get_categories,
)
from payreq.services.permission_service import Principal

S = ExpenseRequestStatus


@pytest.fixture
def service(db):
    return ExpenseRequestService(db)


@pytest.fixture
def owner(employee):
    return Principal.from_user(employee)


def _data(amount="150000", currency="VND", exchange_rate=None, **extra):
    return ExpenseRequestCreate(
        title=extra.pop("title", "Taxi to client"),
        expense_date=date(2025, 5, 2),
        amount=Decimal(amount),
        currency=currency,
        exchange_rate=Decimal(exchange_rate) if exchange_rate is not None else None,
        category=extra.pop("category", ExpenseCategory.TRAVEL),
        **extra
    )


# ---------- currency conversion ----------

def test_foreign_currency_is_converted():
    assert convert_to_base(Decimal("100"), "USD", Decimal("24000")) == (Decimal("24000"), Decimal("2400000.00"))


def test_base_currency_needs_no_rate():
    assert convert_to_base(Decimal("150000"), "VND", Decimal("2")) == (None, Decimal("150000.00"))


def test_foreign_currency_without_rate_is_rejected():
    with pytest.raises(ValidationError):
        convert_to_base(Decimal("10"), "EUR", None)


def test_currency_code_is_normalised():
    assert _data(currency=" usd ", exchange_rate="24000").currency == "USD"


def test_create_stores_conversion(db, service, owner):
    expense = service.create(owner, _data(amount="100", currency="USD", exchange_rate="24000"))
    db.commit()

    assert expense.status == S.DRAFT
    assert expense.user_id == owner.user_id
    assert expense.exchange_rate == Decimal("24000")
    assert expense.amount_in_vnd == Decimal("2400000.00")


def test_create_in_base_currency(db, service, owner):
    expense = service.create(owner, _data(amount="250000"))
    db.commit()

    assert expense.exchange_rate is None
    assert expense.amount_in_vnd == Decimal("250000.00")


def test_create_without_rate_fails(db, service, owner):
    with pytest.raises(ValidationError):
        service.create(owner, _data(amount="10", currency="EUR"))


# ---------- numbering ----------

def test_expense_numbers_are_sequential_per_company(db, service, owner, make_user, other_company):
    first = service.create(owner, _data())
    second = service.create(owner, _data())
    outsider = Principal.from_user(make_user(role_names=["EMPLOYEE"], company_id=other_company.id))
    foreign = service.create(outsider, _data())
    db.commit()

    assert (first.request_number, second.request_number) == ("EXP-00001", "EXP-00002")
    assert foreign.request_number == "EXP-00001"


# ---------- status workflow ----------

def test_owner_submits_and_manager_approves(db, service, owner, manager):
    expense = service.create(owner, _data())
    db.commit()

    service.change_status(owner, expense.id, S.SUBMITTED)
    service.change_status(Principal.from_user(manager), expense.id, S.APPROVED, notes="fine")
    db.commit()

    assert expense.status == S.APPROVED
    assert expense.notes == "fine"


def test_legacy_manager_without_roles_can_approve(db, service, owner, make_user):
    legacy_manager = Principal.from_user(make_user(LegacyRole.MANAGER))
    expense = service.create(owner, _data())
    service.change_status(owner, expense.id, S.SUBMITTED)

    service.change_status(legacy_manager, expense.id, S.APPROVED)
    assert expense.status == S.APPROVED


def test_owner_cannot_approve_own_request(db, service, owner):
    expense = service.create(owner, _data())
    service.change_status(owner, expense.id, S.SUBMITTED)

    with pytest.raises(Forbidden):
        service.change_status(owner, expense.id, S.APPROVED)
    with pytest.raises(Forbidden):
        service.change_status(owner, expense.id, S.REJECTED)


def test_accountant_marks_paid(db, service, owner, manager, accountant):
    expense = service.create(owner, _data())
    service.change_status(owner, expense.id, S.SUBMITTED)
    service.change_status(Principal.from_user(manager), expense.id, S.APPROVED)

    service.change_status(Principal.from_user(accountant), expense.id, S.PAID)
    assert expense.status == S.PAID

    with pytest.raises(InvalidStatusTransition):
        service.change_status(owner, expense.id, S.CANCELLED)


def test_submit_without_draft_is_invalid(db, service, owner, manager):
    expense = service.create(owner, _data())

    with pytest.raises(InvalidStatusTransition):
        service.change_status(Principal.from_user(manager), expense.id, S.APPROVED)


def test_rejected_request_goes_back_to_draft(db, service, owner, manager):
    expense = service.create(owner, _data())
    service.change_status(owner, expense.id, S.SUBMITTED)
    service.change_status(Principal.from_user(manager), expense.id, S.REJECTED)
    service.change_status(owner, expense.id, S.DRAFT)

    assert expense.status == S.DRAFT


def test_status_change_notifies_finance(db, service, owner, manager, accountant, admin):
    expense = service.create(owner, _data())
    db.commit()
    db.query(Notification).delete()

    service.change_status(owner, expense.id, S.SUBMITTED)
    db.commit()

    notes = db.query(Notification).all()
    assert {n.user_id for n in notes} == {manager.id, accountant.id, admin.id}
    assert notes[0].message == f"Expense request {expense.request_number} status has been updated to submitted."


# ---------- visibility and ownership ----------

def test_other_employee_cannot_see_request(db, service, owner, make_user):
    expense = service.create(owner, _data())
    db.commit()
    colleague = Principal.from_user(make_user(role_names=["EMPLOYEE"]))

    with pytest.raises(NotFound):
        service.get(colleague, expense.id)
    with pytest.raises(NotFound):
        service.change_status(colleague, expense.id, S.SUBMITTED)
    with pytest.raises(NotFound):
        service.delete(colleague, expense.id)

    items, total = service.get_requests(colleague)
    assert (items, total) == ([], 0)


def test_read_all_sees_company_requests(db, service, owner, accountant, make_user, other_company):
    service.create(owner, _data())
    service.create(owner, _data(category=ExpenseCategory.MEALS, title="Lunch"))
    outsider = Principal.from_user(make_user(role_names=["EMPLOYEE"], company_id=other_company.id))
    service.create(outsider, _data())
    db.commit()

    items, total = service.get_requests(Principal.from_user(accountant))
    assert total == 2

    meals, total = service.get_requests(Principal.from_user(accountant), category=ExpenseCategory.MEALS)
    assert [item.title for item in meals] == ["Lunch"]


def test_accountant_can_read_but_not_edit_others(db, service, owner, accountant):
    expense = service.create(owner, _data())
    db.commit()
    as_accountant = Principal.from_user(accountant)

    assert service.get(as_accountant, expense.id).id == expense.id
    with pytest.raises(Forbidden):
        service.update(as_accountant, expense.id, ExpenseRequestUpdate(title="Changed"))


# ---------- edits and deletion ----------

def test_update_recomputes_base_amount(db, service, owner):
    expense = service.create(owner, _data(amount="100", currency="USD", exchange_rate="24000"))
    db.commit()

    service.update(owner, expense.id, ExpenseRequestUpdate(amount=Decimal("50")))
    db.commit()
    assert expense.amount_in_vnd == Decimal("1200000.00")

    service.update(owner, expense.id, ExpenseRequestUpdate(currency="VND", amount=Decimal("300000")))
    db.commit()
    assert expense.exchange_rate is None
    assert expense.amount_in_vnd == Decimal("300000.00")


@pytest.mark.parametrize("status,editable,deletable", [
    (S.DRAFT, True, True),
    (S.REJECTED, True, True),
    (S.CANCELLED, False, True),
    (S.SUBMITTED, False, False),
    (S.APPROVED, False, False),
    (S.PAID, False, False),
])
def test_edit_and_delete_rules(db, service, owner, status, editable, deletable):
    expense = service.create(owner, _data())
    expense.status = status
    db.commit()

    if editable:
        service.update(owner, expense.id, ExpenseRequestUpdate(title="Renamed"))
        assert expense.title == "Renamed"
    else:
        with pytest.raises(ImmutableInCurrentStatus):
            service.update(owner, expense.id, ExpenseRequestUpdate(title="Renamed"))

    if deletable:
        service.delete(owner, expense.id)
        db.commit()
        with pytest.raises(NotFound):
            service.get(owner, expense.id)
    else:
        with pytest.raises(ImmutableInCurrentStatus):
            service.delete(owner, expense.id)


def test_categories_are_listed():
    values = [option["value"] for option in get_categories()]
    assert values == [category.value for category in ExpenseCategory]
