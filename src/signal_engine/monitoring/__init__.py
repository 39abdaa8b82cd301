"""
Operational monitoring: degraded-mode tracking and the audit trail.
"""

from signal_engine.monitoring.audit_logger import AuditEntry, AuditEntryType, AuditLogger
from signal_engine.monitoring.degraded_mode import DegradedModeStatus, DegradedModeTracker, ServiceName

__all__ = [
    'AuditEntry',
    'AuditEntryType',
    'AuditLogger',
    'DegradedModeStatus',
    'DegradedModeTracker',
    'ServiceName',
]
