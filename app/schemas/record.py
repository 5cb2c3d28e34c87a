from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from app.config import settings
from app.models.record import RecordStatus

FormValue = Union[str, int, float, bool, None]


class SortField(str, Enum):
    CREATED_AT = "created_at"
    VALID_UPTO = "valid_upto"
    TOTAL_SCANS = "total_scans"


class SortOrder(str, Enum):
    ASC = "asc"
    DESC = "desc"


class RecordCreate(BaseModel):
    form_data: Dict[str, FormValue] = Field(..., title="Form Data", description="Submitted eForm-C field values.")
    validity_hours: Optional[float] = Field(
        None, title="Validity Hours", description="Hours the pass stays valid; defaults to the configured window."
    )

    @field_validator("form_data")
    @classmethod
    def form_data_not_empty(cls, value: Dict[str, FormValue]) -> Dict[str, FormValue]:
        if not value:
            raise ValueError("form_data must contain at least one field")
        if any(not key.strip() for key in value):
            raise ValueError("form_data keys must not be blank")
        return value

    @field_validator("validity_hours")
    @classmethod
    def validity_in_range(cls, value: Optional[float]) -> Optional[float]:
        if value is None:
            return value
        if value <= 0:
            raise ValueError("validity_hours must be greater than 0")
        if value > settings.max_validity_hours:
            raise ValueError(f"validity_hours must not exceed {settings.max_validity_hours}")
        return value

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "form_data": {
                    "name_of_licensee": "Ram Prasad",
                    "name_of_mineral": "Limestone",
                    "quantity_transported": 12.5,
                },
                "validity_hours": 24,
            }
        }
    )


class RecordFilters(BaseModel):
    status: Optional[RecordStatus] = None
    date_from: Optional[str] = Field(None, description="ISO date or date-time, inclusive")
    date_to: Optional[str] = Field(None, description="ISO date or date-time, inclusive; bare dates cover the whole day")
    sort_by: SortField = SortField.CREATED_AT
    sort_order: SortOrder = SortOrder.DESC
    limit: int = Field(50, ge=1, le=100)
    offset: int = Field(0, ge=0)


class RecordResponse(BaseModel):
    """Owner view of a record."""

    id: str
    user_id: str
    form_data: Dict[str, Any]
    generated_on: str = Field(..., description="DD-MM-YYYY HH:MM:SS AM/PM")
    valid_upto: str = Field(..., description="DD-MM-YYYY HH:MM:SS AM/PM")
    status: RecordStatus = Field(..., description="Effective status")
    public_token: str
    public_url: str
    qr_code_url: Optional[str] = None
    pdf_url: Optional[str] = None
    total_scans: int = 0
    last_scan_at: Optional[datetime] = None
    created_at: datetime
    archived_at: Optional[datetime] = None
    remaining_validity: str

    model_config = ConfigDict(use_enum_values=True)


class PublicRecordView(BaseModel):
    """Projection returned to unauthenticated callers; carries no owner reference."""

    id: str
    public_token: str
    form_data: Dict[str, Any]
    generated_on: str
    valid_upto: str
    status: RecordStatus
    qr_code_url: Optional[str] = None
    pdf_url: Optional[str] = None
    total_scans: int = 0
    last_scan_at: Optional[datetime] = None
    remaining_validity: str

    model_config = ConfigDict(use_enum_values=True)


class RecordList(BaseModel):
    records: List[RecordResponse]
    total: int
    limit: int
    offset: int


class ScanLogResponse(BaseModel):
    id: int
    record_id: str
    scanned_at: datetime
    user_agent: Optional[str] = None
    ip_address: Optional[str] = None
    referrer: Optional[str] = None
    session_id: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)
