"""
Status transition tables for payment and expense requests
"""
from typing import Dict, FrozenSet, Iterable, Mapping

from payreq.core.exceptions import ImmutableInCurrentStatus, InvalidStatusTransition
from payreq.models import ExpenseRequestStatus, PaymentRequestStatus


class StatusMachine:
    """
    Closed transition table over one status enum.

    A move to the current status is always allowed and is a no-op for callers.
    """

    def __init__(
        self,
        transitions: Mapping,
        editable: Iterable,
        deletable: Iterable,
    ):
        self.transitions: Dict = {status: frozenset(targets) for status, targets in transitions.items()}
        self.editable: FrozenSet = frozenset(editable)
        self.deletable: FrozenSet = frozenset(deletable)

    def allowed_targets(self, current) -> FrozenSet:
        return self.transitions.get(current, frozenset())

    def can_transition(self, current, target) -> bool:
        if current == target:
            return True
        return target in self.allowed_targets(current)

    def check_transition(self, current, target) -> None:
        if not self.can_transition(current, target):
            raise InvalidStatusTransition(current, target)

    def check_editable(self, status) -> None:
        if status not in self.editable:
            raise ImmutableInCurrentStatus(status, "update")

    def check_deletable(self, status) -> None:
        if status not in self.deletable:
            raise ImmutableInCurrentStatus(status, "delete")


_PR = PaymentRequestStatus

PAYMENT_REQUEST_MACHINE = StatusMachine(
    transitions={
        _PR.DRAFT: {_PR.PENDING, _PR.CANCELLED},
        _PR.PENDING: {_PR.APPROVED, _PR.REJECTED, _PR.CANCELLED},
        _PR.APPROVED: {_PR.PAID, _PR.PARTIALLY_PAID, _PR.CANCELLED},
        _PR.PARTIALLY_PAID: {_PR.PAID, _PR.CANCELLED},
        _PR.OVERDUE: {_PR.PAID, _PR.PARTIALLY_PAID, _PR.CANCELLED},
        _PR.REJECTED: {_PR.PENDING},
        _PR.CANCELLED: {_PR.PENDING},
        _PR.PAID: set(),
    },
    editable={_PR.DRAFT, _PR.PENDING},
    deletable={_PR.DRAFT, _PR.PENDING, _PR.CANCELLED, _PR.REJECTED},
)

# Statuses a payment can be applied in
PAYABLE_STATUSES = frozenset({_PR.PENDING, _PR.APPROVED, _PR.PARTIALLY_PAID, _PR.OVERDUE})

# Statuses the overdue sweep moves to OVERDUE once past due
OVERDUE_CANDIDATE_STATUSES = frozenset({_PR.PENDING, _PR.APPROVED, _PR.PARTIALLY_PAID})


_EX = ExpenseRequestStatus

EXPENSE_REQUEST_MACHINE = StatusMachine(
    transitions={
        _EX.DRAFT: {_EX.SUBMITTED, _EX.CANCELLED},
        _EX.SUBMITTED: {_EX.APPROVED, _EX.REJECTED, _EX.CANCELLED},
        _EX.APPROVED: {_EX.PAID, _EX.CANCELLED},
        _EX.REJECTED: {_EX.DRAFT, _EX.CANCELLED},
        _EX.CANCELLED: {_EX.DRAFT},
        _EX.PAID: set(),
    },
    editable={_EX.DRAFT, _EX.REJECTED},
    deletable={_EX.DRAFT, _EX.REJECTED, _EX.CANCELLED},
)
