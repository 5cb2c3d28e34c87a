from .record import (
    PublicRecordView,
    RecordCreate,
    RecordFilters,
    RecordList,
    RecordResponse,
    ScanLogResponse,
    SortField,
    SortOrder,
)

# Define the public API of this module
__all__ = [
    "PublicRecordView",
    "RecordCreate",
    "RecordFilters",
    "RecordList",
    "RecordResponse",
    "ScanLogResponse",
    "SortField",
    "SortOrder",
]
