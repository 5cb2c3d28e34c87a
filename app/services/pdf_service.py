"""
PDF Service

Renders an eForm-C pass as a single A4 page holding three identical
tear-off copies (licensee, transporter, inspector). Each copy carries its
own Devanagari heading, the numbered field grid and the verification QR
code. Generated PDFs are stored under ``pdfs/{owner_id}/{record_id}.pdf``
and handed out through signed, time-limited URLs.
"""

import asyncio
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from io import BytesIO
from typing import Any, Mapping, Optional

from reportlab.lib.pagesizes import A4
from reportlab.lib.units import mm
from reportlab.lib.utils import ImageReader, simpleSplit
from reportlab.pdfbase import pdfmetrics
from reportlab.pdfbase.ttfonts import TTFError, TTFont
from reportlab.pdfgen import canvas

from app.config import settings
from app.services.artifacts import ArtifactResult
from app.services.storage_service import PDF_PREFIX, BlobStorage, get_storage
from app.utils.timestamps import format_timestamp

logger = logging.getLogger(__name__)

# Layout, in millimetres measured from the top-left corner
PAGE_MARGIN_X = 12
COLUMN_RIGHT_X = 110
LINE_HEIGHT = 5
INDENT = 6
HEADING_FONT_SIZE = 10
BODY_FONT_SIZE = 9
MIN_FONT_SIZE = 5
FONT_STEP = 0.5
QR_X = 172
QR_SIZE = 22

DEFAULT_FONT = "Helvetica"
DEVANAGARI_FONT = "NotoSansDeva"

# (vertical offset, heading) per copy
COPIES = (
    (14, "प्रथम प्रति ( पट्टा धारक हेतु )"),
    (102, "द्वितीय प्रति ( परिवहनकर्ता / उपभोक्ता / भण्डारण / कार्यदायी संस्था हेतु )"),
    (190, "तृतीय प्रति ( जाँचकर्ता हेतु )"),
)

# Form keys accepted for each printed field, first match wins
FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "form_no": ("eform_c_no", "eform_c_number", "formNo"),
    "licensee_id": ("licenseeId", "licensee_id"),
    "licensee_name": ("licenseeName", "name_of_licensee", "licensee_name", "name_of_lessee", "nameOfLicenseeOfLease"),
    "mobile": ("mobile", "mobile_number_of_licensee", "licensee_mobile", "mobile_number_of_lessee", "mobileNumberOfLicensee"),
    "address": ("address", "licensee_details_address", "licenseeDetailsAddress"),
    "tehsil": ("tehsil", "tehsil_of_license", "tehsil_of_lessee", "tehsilOfLicense"),
    "district": ("district", "district_of_license", "district_of_lessee", "districtOfLicense"),
    "qty": ("qty", "quantity_transported", "quantity_in_ton", "quantityInTonnes"),
    "mineral": ("mineral", "name_of_mineral", "mineral_name", "mineralName"),
    "loading_from": ("loadingFrom", "loading_from", "placeOfLoading"),
    "destination": ("destination", "destination_delivery_address", "name_of_consignee", "nameOfConsignee"),
    "distance": ("distance", "distance_approx", "distance_km", "distanceInKm"),
    "destination_district": ("destination_district", "destinationDistrict"),
    "traveling_duration": ("traveling_duration", "travelingDuration"),
    "selling_price": ("sellingPrice", "selling_price", "sellingPriceRs"),
    "serial_no": ("serialNo", "serial_number", "serialNumber"),
}


def to_text(value: Any, fallback: str = "-") -> str:
    if value is None or value == "":
        return fallback
    if isinstance(value, bool):
        return "Yes" if value else "No"
    return str(value)


def contains_devanagari(text: str) -> bool:
    return any("\u0900" <= ch <= "\u097f" for ch in text)


class DevanagariFontCache:
    """
    Process-wide, lazily initialised registration of the Devanagari font.

    The font file is read once, on first use. When it is missing or
    unreadable, ``get()`` returns None for the life of the process and
    Devanagari runs are drawn in the default font instead.
    """

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()
        self._loaded = False
        self._font_name: Optional[str] = None

    def get(self) -> Optional[str]:
        if self._loaded:
            return self._font_name

        with self._lock:
            if not self._loaded:
                try:
                    pdfmetrics.registerFont(TTFont(DEVANAGARI_FONT, self.path))
                    self._font_name = DEVANAGARI_FONT
                    logger.info(f"Registered Devanagari font from {self.path}")
                except (OSError, TTFError) as e:
                    logger.warning(
                        f"Devanagari font not available ({self.path}): {e}. "
                        "Hindi text may not render; set DEVANAGARI_FONT_PATH to a Noto Sans Devanagari TTF."
                    )
                    self._font_name = None
                self._loaded = True

        return self._font_name

    def reset(self) -> None:
        with self._lock:
            self._loaded = False
            self._font_name = None


font_cache = DevanagariFontCache(settings.devanagari_font_path)


@dataclass
class PassFields:
    """Display strings for one eForm-C copy."""

    form_no: str
    licensee_id: str
    licensee_name: str
    mobile: str
    address: str
    tehsil: str
    district: str
    qty: str
    mineral: str
    loading_from: str
    destination: str
    distance: str
    generated_on: str
    valid_upto: str
    destination_district: str
    traveling_duration: str
    selling_price: str
    serial_no: str

    @classmethod
    def from_form(
        cls, record_id: str, data: Mapping[str, Any], generated_on: datetime, valid_upto: datetime
    ) -> "PassFields":
        def pick(name: str) -> Any:
            for key in FIELD_ALIASES[name]:
                value = data.get(key)
                if value is not None and value != "":
                    return value
            return None

        values = {name: to_text(pick(name)) for name in FIELD_ALIASES}
        values["form_no"] = to_text(pick("form_no"), fallback=record_id)
        if values["destination_district"] == "-":
            values["destination_district"] = values["district"]

        return cls(
            generated_on=format_timestamp(generated_on),
            valid_upto=format_timestamp(valid_upto),
            **values,
        )


class _PageWriter:
    """Draws text on a canvas using top-left millimetre coordinates."""

    def __init__(self, pdf: canvas.Canvas, deva_font: Optional[str]):
        self.pdf = pdf
        self.deva_font = deva_font
        self.page_height = A4[1]
        self.font_size = BODY_FONT_SIZE

    def _y(self, y_mm: float) -> float:
        return self.page_height - y_mm * mm

    def font_for(self, text: str) -> str:
        if contains_devanagari(text) and self.deva_font:
            return self.deva_font
        return DEFAULT_FONT

    def text(self, text: str, x_mm: float, y_mm: float, size: Optional[float] = None) -> None:
        size = size or self.font_size
        self.pdf.setFont(self.font_for(text), size)
        self.pdf.drawString(x_mm * mm, self._y(y_mm), text)

    def row(self, y_mm: float, left: str, right: str) -> None:
        self.text(left, PAGE_MARGIN_X, y_mm)
        self.text(right, COLUMN_RIGHT_X, y_mm)

    def _split(self, text: str, width: float, size: float) -> list[str]:
        lines: list[str] = []
        for paragraph in (text or "").split("\n"):
            lines.extend(simpleSplit(paragraph, self.font_for(paragraph), size, width) or [""])
        return lines

    def wrapped(self, text: str, x_mm: float, y_mm: float, max_lines: int) -> float:
        """
        Draw ``text`` below a label, wrapped to the page width.

        The font shrinks until the value fits in ``max_lines`` body lines.
        Every line is drawn even when it still does not fit at
        ``MIN_FONT_SIZE``.

        Returns:
            Height consumed in millimetres: the full slot, or more when the
            value overflows it
        """
        width = (A4[0] / mm - x_mm - PAGE_MARGIN_X) * mm
        budget = max_lines * LINE_HEIGHT

        size = self.font_size
        lines = self._split(text, width, size)
        while len(lines) * LINE_HEIGHT * size / BODY_FONT_SIZE > budget and size > MIN_FONT_SIZE:
            size = max(MIN_FONT_SIZE, size - FONT_STEP)
            lines = self._split(text, width, size)

        line_height = LINE_HEIGHT * size / BODY_FONT_SIZE
        if len(lines) * line_height > budget:
            logger.warning(f"Wrapped value needs {len(lines)} lines at {size}pt and overflows its {max_lines}-line slot")

        for i, line in enumerate(lines):
            self.text(line, x_mm, y_mm + i * line_height, size=size)
        return max(budget, len(lines) * line_height)

    def image(self, image: ImageReader, x_mm: float, top_mm: float, size_mm: float) -> None:
        self.pdf.drawImage(image, x_mm * mm, self._y(top_mm + size_mm), width=size_mm * mm, height=size_mm * mm)

    def tear_line(self, y_mm: float) -> None:
        self.pdf.saveState()
        self.pdf.setDash(2, 2)
        self.pdf.setLineWidth(0.3)
        self.pdf.line(PAGE_MARGIN_X * mm, self._y(y_mm), (A4[0] / mm - PAGE_MARGIN_X) * mm, self._y(y_mm))
        self.pdf.restoreState()


def _render_copy(page: _PageWriter, start_y: float, heading: str, d: PassFields, qr: Optional[ImageReader]) -> None:
    y = start_y

    page.text(heading, PAGE_MARGIN_X, y, size=HEADING_FONT_SIZE)
    if qr is not None:
        page.image(qr, QR_X, y - 4, QR_SIZE)
    y += 6

    page.row(y, f"1. eForm-C No.: {d.form_no}", f"2. Licensee Id: {d.licensee_id}")
    y += LINE_HEIGHT

    page.text("3. Name of Licensee:", PAGE_MARGIN_X, y)
    y += LINE_HEIGHT
    page.text(d.licensee_name, PAGE_MARGIN_X + INDENT, y)
    y += LINE_HEIGHT

    page.text(f"4. Mobile Number Of Licensee: {d.mobile}", PAGE_MARGIN_X, y)
    y += LINE_HEIGHT

    page.text("5. Licensee Details [Address, Village, (Gata/Khand), Area]:", PAGE_MARGIN_X, y)
    y += LINE_HEIGHT
    y += page.wrapped(d.address, PAGE_MARGIN_X + INDENT, y, max_lines=2)

    page.row(y, f"6. Tehsil Of License: {d.tehsil}", f"7. District Of License: {d.district}")
    y += LINE_HEIGHT

    page.text(
        f"8. QTY Transported In (Cubic Meter/Ton for Silica sand/Diaspore/Pyrophylite): {d.qty}",
        PAGE_MARGIN_X,
        y,
    )
    y += LINE_HEIGHT

    page.text("9. Name Of Mineral:", PAGE_MARGIN_X, y)
    y += LINE_HEIGHT
    y += page.wrapped(d.mineral, PAGE_MARGIN_X + INDENT, y, max_lines=1)

    page.row(y, f"10. Loading From: {d.loading_from}", f"11. Destination: {d.destination}")
    y += LINE_HEIGHT

    page.row(y, f"12. Distance (Approx in K.M.): {d.distance}", f"13. eForm-C Generated On: {d.generated_on}")
    y += LINE_HEIGHT

    page.row(y, f"14. eForm-C Valid Upto: {d.valid_upto}", f"15. Destination District: {d.destination_district}")
    y += LINE_HEIGHT

    page.row(y, f"16. Traveling Duration: {d.traveling_duration}", f"17. Selling Price (Rs): {d.selling_price}")
    y += LINE_HEIGHT

    page.text(f"18. Serial Number: {d.serial_no}", PAGE_MARGIN_X, y)


def render_pdf(
    record_id: str,
    field_values: Mapping[str, Any],
    generated_on: datetime,
    valid_upto: datetime,
    qr_image: Optional[bytes] = None,
) -> bytes:
    """
    Render the three-copy eForm-C page.

    Args:
        record_id: Printed as the form number when the form has none
        field_values: Submitted form data
        generated_on: Creation instant
        valid_upto: Expiry instant
        qr_image: PNG bytes of the verification QR, or None to omit it

    Returns:
        PDF document bytes
    """
    fields = PassFields.from_form(record_id, field_values or {}, generated_on, valid_upto)

    qr = None
    if qr_image:
        try:
            qr = ImageReader(BytesIO(qr_image))
        except Exception as e:
            logger.warning(f"QR image for record {record_id} is unreadable, rendering without it: {e}")

    buffer = BytesIO()
    pdf = canvas.Canvas(buffer, pagesize=A4)
    pdf.setTitle(f"eForm-C {fields.form_no}")
    pdf.setAuthor(settings.app_name)

    page = _PageWriter(pdf, font_cache.get())
    for start_y, heading in COPIES:
        _render_copy(page, start_y, heading, fields, qr)
    for start_y, _ in COPIES[1:]:
        page.tear_line(start_y - 5)

    pdf.showPage()
    pdf.save()
    return buffer.getvalue()


async def upload_pdf(record_id: str, owner_id: str, pdf_bytes: bytes, storage: BlobStorage | None = None) -> str:
    """Store a rendered PDF and return a signed URL for it."""
    storage = storage or get_storage()
    key = f"{PDF_PREFIX}/{owner_id}/{record_id}.pdf"
    await storage.put(key, pdf_bytes, content_type="application/pdf")
    return storage.signed_url(key, settings.pdf_url_expiry_seconds)


async def generate_and_store_pdf(
    record_id: str,
    owner_id: str,
    form_data: Mapping[str, Any],
    generated_on: datetime,
    valid_upto: datetime,
    qr_image: Optional[bytes] = None,
    storage: BlobStorage | None = None,
) -> ArtifactResult:
    """
    Render and upload the pass PDF for a record.

    Never raises; failures come back in the result.
    """
    try:
        pdf_bytes = await asyncio.to_thread(render_pdf, record_id, form_data, generated_on, valid_upto, qr_image)
        pdf_url = await upload_pdf(record_id, owner_id, pdf_bytes, storage=storage)
    except Exception as e:
        logger.error(f"PDF generation failed for record {record_id}: {e}")
        return ArtifactResult.failed("pdf", e)

    logger.info(f"PDF stored for record {record_id}")
    return ArtifactResult(artifact="pdf", url=pdf_url, content=pdf_bytes)
