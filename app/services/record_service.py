"""
Record Service

Owns the lifecycle of an eForm-C record: creation (validity window, public
token, best-effort QR/PDF artifacts, audit entry), owner-scoped and public
reads, listing, archiving and deletion.

A record's displayed status is never stored except for ``archived``; it is
recomputed on every read by comparing the current time with the record's
``valid_upto`` (see ``compute_effective_status``).
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, time
from typing import Any, Callable, Mapping, Optional

from sqlalchemy import asc, delete, desc, func, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app import database
from app.config import settings
from app.exceptions import (
    OwnershipError,
    PersistenceError,
    PublicTokenExhaustedError,
    RecordNotFoundError,
    StorageError,
    ValidationError,
)
from app.models.record import GENERATED_ON_KEY, VALID_UPTO_KEY, Record, RecordStatus
from app.models.scan_log import ScanLog
from app.schemas.record import PublicRecordView, RecordFilters, RecordList, RecordResponse, SortOrder
from app.services.artifacts import ArtifactResult
from app.services.pdf_service import generate_and_store_pdf
from app.services.qr_service import build_public_url, generate_and_store_qr
from app.services.storage_service import PDF_PREFIX, BlobStorage, get_storage
from app.utils.audit_log import log_audit
from app.utils.timestamps import (
    add_validity_window,
    as_utc,
    display_zone,
    format_timestamp,
    is_valid_timestamp_format,
    remaining_validity,
    resolve_timestamp,
    utcnow,
)
from app.utils.tokens import generate_public_token, looks_like_record_id

logger = logging.getLogger(__name__)

ENTITY_TYPE = "record"


def compute_effective_status(record: Record, now: Optional[datetime] = None) -> RecordStatus:
    """
    Status shown to users.

    ``archived`` is sticky. Otherwise a record is ``active`` until ``now``
    passes its ``valid_upto`` and ``expired`` after that.
    """
    if record.status == RecordStatus.ARCHIVED.value:
        return RecordStatus.ARCHIVED

    valid_upto = resolve_timestamp(record.form_data, record.valid_upto, VALID_UPTO_KEY)
    if valid_upto is None:
        logger.warning(f"Record {record.id} has no usable valid_upto, treating as expired")
        return RecordStatus.EXPIRED

    now = as_utc(now or utcnow())
    return RecordStatus.ACTIVE if now <= valid_upto else RecordStatus.EXPIRED


def _display_timestamp(form_data: Optional[Mapping[str, Any]], key: str, stored: Optional[datetime]) -> str:
    embedded = form_data.get(key) if form_data else None
    if is_valid_timestamp_format(embedded):
        return embedded

    resolved = resolve_timestamp(form_data, stored, key)
    return format_timestamp(resolved) if resolved is not None else "-"


def _remaining(record: Record, now: datetime) -> str:
    valid_upto = resolve_timestamp(record.form_data, record.valid_upto, VALID_UPTO_KEY)
    return remaining_validity(valid_upto, now) if valid_upto is not None else "Expired"


def _optional_utc(value: Optional[datetime]) -> Optional[datetime]:
    return as_utc(value) if value is not None else None


def build_owner_view(record: Record, now: Optional[datetime] = None) -> RecordResponse:
    now = now or utcnow()
    return RecordResponse(
        id=record.id,
        user_id=record.user_id,
        form_data=dict(record.form_data or {}),
        generated_on=_display_timestamp(record.form_data, GENERATED_ON_KEY, record.generated_on),
        valid_upto=_display_timestamp(record.form_data, VALID_UPTO_KEY, record.valid_upto),
        status=compute_effective_status(record, now),
        public_token=record.public_token,
        public_url=build_public_url(record.public_token),
        qr_code_url=record.qr_code_url,
        pdf_url=record.pdf_url,
        total_scans=record.total_scans or 0,
        last_scan_at=_optional_utc(record.last_scan_at),
        created_at=as_utc(record.created_at),
        archived_at=_optional_utc(record.archived_at),
        remaining_validity=_remaining(record, now),
    )


def build_public_view(record: Record, now: Optional[datetime] = None) -> PublicRecordView:
    now = now or utcnow()
    return PublicRecordView(
        id=record.id,
        public_token=record.public_token,
        form_data=dict(record.form_data or {}),
        generated_on=_display_timestamp(record.form_data, GENERATED_ON_KEY, record.generated_on),
        valid_upto=_display_timestamp(record.form_data, VALID_UPTO_KEY, record.valid_upto),
        status=compute_effective_status(record, now),
        qr_code_url=record.qr_code_url,
        pdf_url=record.pdf_url,
        total_scans=record.total_scans or 0,
        last_scan_at=_optional_utc(record.last_scan_at),
        remaining_validity=_remaining(record, now),
    )


def parse_date_bound(value: Optional[str], field_name: str, end_of_day: bool = False) -> Optional[datetime]:
    """
    Parse a list filter bound.

    Bare dates (``YYYY-MM-DD``) are read on the display timezone; as an
    upper bound they cover the whole day, up to 23:59:59.999.

    Raises:
        ValidationError: If the value is neither an ISO date nor date-time
    """
    if value is None or value == "":
        return None

    text = value.strip()
    try:
        if len(text) == 10:
            day = datetime.strptime(text, "%Y-%m-%d").date()
            bound_time = time(23, 59, 59, 999000) if end_of_day else time(0, 0)
            return as_utc(datetime.combine(day, bound_time, tzinfo=display_zone()))
        return as_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except ValueError:
        raise ValidationError(f"Invalid {field_name}: expected an ISO date or date-time", field=field_name)


@dataclass
class CreateResult:
    record: Record
    public_token: str
    artifacts_pending: bool
    artifacts: list[ArtifactResult] = field(default_factory=list)


class RecordService:
    """Record operations bound to one database session."""

    def __init__(
        self,
        db: AsyncSession,
        storage: Optional[BlobStorage] = None,
        clock: Optional[Callable[[], datetime]] = None,
        token_factory: Callable[[], str] = generate_public_token,
    ):
        self.db = db
        self._storage = storage
        self.clock = clock or utcnow
        self.token_factory = token_factory

    @property
    def storage(self) -> BlobStorage:
        return self._storage or get_storage()

    def now(self) -> datetime:
        return as_utc(self.clock())

    async def create_record(
        self,
        owner_id: str,
        form_data: Mapping[str, Any],
        validity_hours: Optional[float] = None,
        generate_artifacts: bool = False,
    ) -> CreateResult:
        """
        Create a record and mint its public token.

        Args:
            owner_id: Submitting user's id
            form_data: Submitted field values
            validity_hours: Validity window; defaults to ``settings.default_validity_hours``
            generate_artifacts: Produce the QR code and PDF before returning.
                When False the caller schedules ``finalize_record_artifacts``.

        Returns:
            CreateResult with the inserted record

        Raises:
            ValidationError: If validity_hours is not positive
            PublicTokenExhaustedError: If every token attempt collided
            PersistenceError: If the row cannot be inserted, or artifact URLs cannot be saved
        """
        hours = settings.default_validity_hours if validity_hours is None else validity_hours
        if hours <= 0:
            raise ValidationError("validity_hours must be greater than 0", field="validity_hours")

        generated_on = self.now().replace(microsecond=0)
        valid_upto = add_validity_window(generated_on, hours)

        payload = dict(form_data)
        payload[GENERATED_ON_KEY] = format_timestamp(generated_on)
        payload[VALID_UPTO_KEY] = format_timestamp(valid_upto)

        record = await self._insert_with_unique_token(owner_id, payload, generated_on, valid_upto)
        logger.info(f"Record {record.id} created for user {owner_id} (token {record.public_token})")

        if not generate_artifacts:
            return CreateResult(record=record, public_token=record.public_token, artifacts_pending=True)

        results = await self.generate_artifacts(record)
        return CreateResult(
            record=record,
            public_token=record.public_token,
            artifacts_pending=False,
            artifacts=results,
        )

    async def _insert_with_unique_token(
        self, owner_id: str, payload: dict, generated_on: datetime, valid_upto: datetime
    ) -> Record:
        attempts = settings.public_token_max_attempts

        for attempt in range(1, attempts + 1):
            record = Record(
                id=str(uuid.uuid4()),
                user_id=owner_id,
                form_data=payload,
                generated_on=generated_on,
                valid_upto=valid_upto,
                status=RecordStatus.ACTIVE.value,
                public_token=self.token_factory(),
                qr_code_url=None,
                pdf_url=None,
                total_scans=0,
                created_at=generated_on,
                updated_at=generated_on,
            )
            self.db.add(record)

            try:
                await self.db.commit()
                return record
            except IntegrityError as e:
                await self.db.rollback()
                if "public_token" not in str(e.orig):
                    logger.error(f"Failed to insert record for user {owner_id}: {e}")
                    raise PersistenceError("Failed to create record", operation="create_record") from e
                logger.warning(f"Public token collision on attempt {attempt}/{attempts}, retrying")
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(f"Failed to insert record for user {owner_id}: {e}")
                raise PersistenceError("Failed to create record", operation="create_record") from e

        raise PublicTokenExhaustedError(attempts)

    async def generate_artifacts(self, record: Record) -> list[ArtifactResult]:
        """
        Generate the QR code and PDF, save whichever URLs succeeded, then audit.

        QR and PDF failures are logged and returned, never raised. The PDF
        embeds the QR image when encoding succeeded, even if its upload did not.

        Raises:
            PersistenceError: If the artifact URLs cannot be saved
        """
        generated_on = as_utc(record.generated_on)
        valid_upto = as_utc(record.valid_upto)

        qr = await generate_and_store_qr(record.id, record.user_id, record.public_token, storage=self.storage)
        pdf = await generate_and_store_pdf(
            record.id,
            record.user_id,
            record.form_data or {},
            generated_on,
            valid_upto,
            qr_image=qr.content,
            storage=self.storage,
        )
        results = [qr, pdf]

        for result in results:
            if not result.ok:
                logger.warning(f"Record {record.id} saved without {result.artifact}: {result.error.message}")

        if qr.ok or pdf.ok:
            if qr.ok:
                record.qr_code_url = qr.url
            if pdf.ok:
                record.pdf_url = pdf.url
            try:
                await self.db.commit()
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(f"Failed to save artifact URLs for record {record.id}: {e}")
                raise PersistenceError("Failed to save artifact URLs", operation="update_artifacts") from e

        await log_audit(
            action="record_created",
            entity_type=ENTITY_TYPE,
            entity_id=record.id,
            user_id=record.user_id,
            new_values={
                "public_token": record.public_token,
                "generated_on": record.form_data.get(GENERATED_ON_KEY),
                "valid_upto": record.form_data.get(VALID_UPTO_KEY),
                "qr_code_url": record.qr_code_url,
                "pdf_url": record.pdf_url,
                "artifact_errors": [r.error.message for r in results if r.error is not None],
            },
        )
        return results

    async def _fetch(self, record_id: str) -> Optional[Record]:
        result = await self.db.execute(select(Record).where(Record.id == record_id))
        return result.scalars().first()

    async def get_for_owner(self, owner_id: str, record_id: str) -> Record:
        """Return the record if ``owner_id`` owns it; non-owners get RecordNotFoundError."""
        result = await self.db.execute(select(Record).where(Record.id == record_id, Record.user_id == owner_id))
        record = result.scalars().first()
        if record is None:
            raise RecordNotFoundError(record_id)
        return record

    async def get_public(self, identifier: Optional[str]) -> PublicRecordView:
        """
        Resolve a public token or a record id to the public projection.

        A value containing a hyphen is looked up as a record id, anything
        else as a public token. Records are viewable whatever their status.
        """
        identifier = (identifier or "").strip()
        if not identifier:
            raise ValidationError("Missing public token", field="public_token")

        if looks_like_record_id(identifier):
            query = select(Record).where(Record.id == identifier)
        else:
            query = select(Record).where(Record.public_token == identifier)

        result = await self.db.execute(query)
        record = result.scalars().first()
        if record is None:
            raise RecordNotFoundError(identifier)

        return build_public_view(record, self.now())

    async def list_records(self, owner_id: str, filters: Optional[RecordFilters] = None) -> RecordList:
        filters = filters or RecordFilters()

        query = select(Record).where(Record.user_id == owner_id)

        date_from = parse_date_bound(filters.date_from, "date_from")
        date_to = parse_date_bound(filters.date_to, "date_to", end_of_day=True)
        if date_from is not None:
            query = query.where(Record.created_at >= date_from)
        if date_to is not None:
            query = query.where(Record.created_at <= date_to)

        column = getattr(Record, filters.sort_by.value)
        direction = asc if filters.sort_order == SortOrder.ASC else desc
        query = query.order_by(direction(column), direction(Record.id))

        now = self.now()

        if filters.status is not None:
            # Effective status depends on the current time, so it is filtered after fetching
            result = await self.db.execute(query)
            matching = [r for r in result.scalars().all() if compute_effective_status(r, now) == filters.status]
            total = len(matching)
            page = matching[filters.offset:filters.offset + filters.limit]
        else:
            count_query = select(func.count()).select_from(query.order_by(None).subquery())
            total = (await self.db.execute(count_query)).scalar_one()
            result = await self.db.execute(query.offset(filters.offset).limit(filters.limit))
            page = result.scalars().all()

        return RecordList(
            records=[build_owner_view(r, now) for r in page],
            total=total,
            limit=filters.limit,
            offset=filters.offset,
        )

    async def archive_record(self, owner_id: str, record_id: str) -> Record:
        """Archive a record. Archiving an archived record changes nothing."""
        record = await self.get_for_owner(owner_id, record_id)
        if record.status == RecordStatus.ARCHIVED.value:
            return record

        previous = record.status
        record.status = RecordStatus.ARCHIVED.value
        record.archived_at = self.now()
        try:
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to archive record {record_id}: {e}")
            raise PersistenceError("Failed to archive record", operation="archive_record") from e

        logger.info(f"Record {record_id} archived by user {owner_id}")
        await log_audit(
            action="record_archived",
            entity_type=ENTITY_TYPE,
            entity_id=record_id,
            user_id=owner_id,
            old_values={"status": previous},
            new_values={"status": RecordStatus.ARCHIVED.value},
        )
        return record

    async def delete_record(self, owner_id: str, record_id: str) -> None:
        """
        Delete a record with its scan logs, then its stored artifacts.

        Raises:
            RecordNotFoundError: If the record does not exist
            OwnershipError: If ``owner_id`` does not own it
            PersistenceError: If the delete fails
        """
        record = await self._fetch(record_id)
        if record is None:
            raise RecordNotFoundError(record_id)
        if record.user_id != owner_id:
            logger.warning(f"User {owner_id} attempted to delete record {record_id} owned by another user")
            raise OwnershipError(record_id)

        snapshot = {
            "public_token": record.public_token,
            "status": record.status,
            "total_scans": record.total_scans,
        }
        blob_keys = {f"{PDF_PREFIX}/{record.user_id}/{record.id}.pdf"}
        for url in (record.qr_code_url, record.pdf_url):
            key = self.storage.key_from_url(url)
            if key:
                blob_keys.add(key)

        try:
            await self.db.execute(delete(ScanLog).where(ScanLog.record_id == record_id))
            await self.db.delete(record)
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to delete record {record_id}: {e}")
            raise PersistenceError("Failed to delete record", operation="delete_record") from e

        for key in sorted(blob_keys):
            try:
                await self.storage.delete(key)
            except StorageError as e:
                logger.warning(f"Could not remove stored object {key} for deleted record {record_id}: {e.message}")

        logger.info(f"Record {record_id} deleted by user {owner_id}")
        await log_audit(
            action="record_deleted",
            entity_type=ENTITY_TYPE,
            entity_id=record_id,
            user_id=owner_id,
            old_values=snapshot,
        )


async def finalize_record_artifacts(record_id: str, storage: Optional[BlobStorage] = None) -> None:
    """
    Background task: generate artifacts for a freshly created record.

    Runs after the creation response has been sent, in its own session.
    """
    try:
        async with database.AsyncSessionLocal() as session:
            record = await session.get(Record, record_id)
            if record is None:
                logger.warning(f"Record {record_id} vanished before its artifacts were generated")
                return
            await RecordService(session, storage=storage).generate_artifacts(record)
    except Exception as e:
        logger.error(f"Artifact generation task failed for record {record_id}: {str(e)}")
