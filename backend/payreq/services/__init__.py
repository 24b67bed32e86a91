# Services Package
from payreq.services.permission_service import (
    Decision, LegacyGrant, RoleGrant, Principal, resolve_permissions,
    PermissionService, RoleService, seed_permissions
)
from payreq.services.state_machine import (
    StatusMachine, PAYMENT_REQUEST_MACHINE, EXPENSE_REQUEST_MACHINE
)
from payreq.services.counter_service import CounterService
from payreq.services.notification_service import NotificationService
from payreq.services.payment_request_service import PaymentRequestService
from payreq.services.expense_request_service import ExpenseRequestService
from payreq.services.overdue_service import (
    OverdueSweepService, run_overdue_sweep, overdue_sweep_loop
)

__all__ = [
    'Decision',
    'LegacyGrant',
    'RoleGrant',
    'Principal',
    'resolve_permissions',
    'PermissionService',
    'RoleService',
    'seed_permissions',
    'StatusMachine',
    'PAYMENT_REQUEST_MACHINE',
    'EXPENSE_REQUEST_MACHINE',
    'CounterService',
    'NotificationService',
    'PaymentRequestService',
    'ExpenseRequestService',
    'OverdueSweepService',
    'run_overdue_sweep',
    'overdue_sweep_loop',
]
