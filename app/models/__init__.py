from .audit_log import AuditLog
from .record import Record, RecordStatus
from .scan_log import ScanLog
from .user import User, UserRole

__all__ = [
    "AuditLog",
    "Record",
    "RecordStatus",
    "ScanLog",
    "User",
    "UserRole",
]
