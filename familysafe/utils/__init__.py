"""Shared utility functions and models.

Convenience re-exports so that consumers can import directly from
``familysafe.utils``.
"""

from familysafe.utils.audit import AuditEvent, log_audit_event
from familysafe.utils.clock import Clock, utc_now
from familysafe.utils.ordered_set import insert_if_absent, remove_if_present

__all__ = [
    "AuditEvent",
    "Clock",
    "insert_if_absent",
    "log_audit_event",
    "remove_if_present",
    "utc_now",
]
