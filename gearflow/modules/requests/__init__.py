"""Gear requests: creation, cancellation, approval and rejection."""

from gearflow.modules.requests.service import RequestService, calculate_due_date

__all__ = [
    "RequestService",
    "calculate_due_date",
]
