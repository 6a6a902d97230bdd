from typing import List

from pydantic import BaseModel

from app.config.settings import settings
from app.schemas.slot_schemas import Area, CriteriaBucket, Dose, SlotRecord
from app.services.crawler.classifier import group_by_date

SEPARATOR = "--------------------"
FOOTER = "Book your slot at https://selfregistration.cowin.gov.in"


class MessageLimits(BaseModel):
    high_volume_threshold: int = settings.HIGH_VOLUME_THRESHOLD
    condensed_per_date: int = settings.CONDENSED_PER_DATE
    normal_per_date: int = settings.NORMAL_PER_DATE
    chunk_limit: int = settings.MESSAGE_CHUNK_LIMIT


def render_header(area: Area, bucket: CriteriaBucket) -> str:
    return f"Vaccine slots available for {area}\n{bucket.describe()}\n\n"


def render_truncation_banner(total: int, per_date: int) -> str:
    return (
        f"Found {total} slots, too many to list. "
        f"Showing only the first {per_date} centers for each date.\n\n"
    )


def render_record(record: SlotRecord) -> str:
    lines = [
        f"Center: {record.center_name or '-'}",
        f"Fee: {record.fee_type or '-'}",
        f"PIN: {record.pincode or '-'}",
        f"Min. age: {record.min_age if record.min_age is not None else '-'}",
    ]
    if record.dose is Dose.ANY:
        lines.append(f"Capacity: {record.capacity}")
    else:
        lines.append(f"Capacity ({record.dose.label}): {record.capacity}")
    if record.vaccine:
        lines.append(f"Vaccine: {record.vaccine}")
    lines.append(SEPARATOR)
    return "\n".join(lines) + "\n"


def render_date_section(
    date: str, records: List[SlotRecord], per_date: int, show_overflow: bool
) -> str:
    section = f"Date: {date}\n"
    section += "".join(render_record(record) for record in records[:per_date])
    hidden = len(records) - per_date
    if show_overflow and hidden > 0:
        section += f"...and {hidden} more slots truncated for {date}\n"
    return section + "\n"


def build_message_chunks(
    area: Area,
    bucket: CriteriaBucket,
    records: List[SlotRecord],
    limits: MessageLimits | None = None,
) -> List[str]:
    """
    Render a bucket's slots as one or more transport-sized messages.

    Above the high-volume threshold each date is cut to the condensed cap
    and a banner follows the header; otherwise each date is cut to the
    normal cap with an "N more" line. Date sections are packed into chunks
    of at most `chunk_limit` characters, footer included (a single oversized
    section still gets a chunk of its own). Only the last chunk carries the
    footer, on its own if the last section leaves no room for it.
    """
    limits = limits or MessageLimits()
    if not records:
        return []

    condensed = len(records) > limits.high_volume_threshold
    per_date = limits.condensed_per_date if condensed else limits.normal_per_date

    preamble = render_header(area, bucket)
    if condensed:
        preamble += render_truncation_banner(len(records), per_date)

    sections = [
        render_date_section(date, date_records, per_date, show_overflow=not condensed)
        for date, date_records in group_by_date(records)
    ]

    chunks: List[str] = []
    current = preamble
    has_section = False
    for index, section in enumerate(sections):
        # The last section has to leave room for the footer as well
        reserve = len(FOOTER) if index == len(sections) - 1 else 0
        if has_section and len(current) + len(section) + reserve > limits.chunk_limit:
            chunks.append(current.rstrip())
            current = ""
            has_section = False
        current += section
        has_section = True

    if len(current) + len(FOOTER) > limits.chunk_limit:
        chunks.append(current.rstrip())
        current = ""
    chunks.append((current + FOOTER).strip())
    return chunks
