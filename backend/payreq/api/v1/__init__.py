# API v1 Package
from payreq.api.v1 import roles, payment_requests, expense_requests, notifications

__all__ = [
    'roles',
    'payment_requests',
    'expense_requests',
    'notifications',
]
