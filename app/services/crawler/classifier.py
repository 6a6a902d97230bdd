from collections.abc import Mapping
from typing import Any, Dict, List, Optional, Tuple

from app.schemas.slot_schemas import (
    AgeBand,
    CriteriaBucket,
    Dose,
    SlotRecord,
    Vaccine,
)
from app.utils.errors import MalformedResponseError
from app.utils.logging import get_logger

logger = get_logger()

BucketMap = Dict[CriteriaBucket, List[SlotRecord]]


def derive_bucket(
    vaccine_label: Optional[str], min_age: Optional[int], dose: Dose
) -> CriteriaBucket:
    """Bucket key for a slot. Same inputs always give the same bucket."""
    return CriteriaBucket(
        vaccine=Vaccine.from_label(vaccine_label),
        age_band=AgeBand.from_min_age(min_age),
        dose=dose,
    )


def _as_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _session_records(center: Mapping, session: Mapping) -> List[SlotRecord]:
    """Zero, one or two records for a session, one per dose with capacity."""
    dose1 = _as_int(session.get("available_capacity_dose1"))
    dose2 = _as_int(session.get("available_capacity_dose2"))
    total = _as_int(session.get("available_capacity")) or 0

    if dose1 is None and dose2 is None:
        doses = [Dose.ANY] if total > 0 else []
    else:
        doses = [
            dose
            for dose, capacity in ((Dose.FIRST, dose1), (Dose.SECOND, dose2))
            if capacity and capacity > 0
        ]

    vaccine = session.get("vaccine") or None
    base = dict(
        center_id=_as_int(center.get("center_id")),
        center_name=_as_str(center.get("name")),
        fee_type=_as_str(center.get("fee_type")),
        pincode=_as_str(center.get("pincode")),
        date=str(session.get("date") or ""),
        available_capacity=total,
        available_capacity_dose1=dose1,
        available_capacity_dose2=dose2,
        min_age=_as_int(session.get("min_age_limit")),
        vaccine=_as_str(vaccine),
    )
    return [SlotRecord(**base, dose=dose) for dose in doses]


def classify(payload: Any) -> BucketMap:
    """
    Turn one calendar response into slot records grouped by criteria bucket.

    Sessions with dose-split capacity produce one record per dose with
    positive capacity; sessions with only an aggregate capacity produce a
    single dose-ANY record. Buckets preserve payload order.

    Raises:
        MalformedResponseError: `centers` is missing or not a list
    """
    if not isinstance(payload, Mapping):
        raise MalformedResponseError(
            f"Expected a JSON object, got {type(payload).__name__}"
        )

    centers = payload.get("centers")
    if not isinstance(centers, list):
        raise MalformedResponseError("Invalid `centers` data found")

    buckets: BucketMap = {}
    unknown_vaccines = set()

    for center in centers:
        if not isinstance(center, Mapping):
            continue
        sessions = center.get("sessions")
        if not isinstance(sessions, list):
            continue

        for session in sessions:
            if not isinstance(session, Mapping):
                continue
            for record in _session_records(center, session):
                bucket = derive_bucket(record.vaccine, record.min_age, record.dose)
                if record.vaccine and bucket.vaccine is Vaccine.ANY:
                    unknown_vaccines.add(record.vaccine)
                buckets.setdefault(bucket, []).append(record)

    if unknown_vaccines:
        logger.warning(
            "Unrecognised vaccine labels bucketed as ANY",
            vaccines=sorted(unknown_vaccines),
        )

    return buckets


def group_by_date(records: List[SlotRecord]) -> List[Tuple[str, List[SlotRecord]]]:
    """Group records by session date in calendar order; unparseable dates go last."""
    grouped: Dict[str, List[SlotRecord]] = {}
    for record in records:
        grouped.setdefault(record.date, []).append(record)

    def sort_key(item: Tuple[str, List[SlotRecord]]):
        parsed = item[1][0].session_date
        return (parsed is None, parsed.toordinal() if parsed else 0, item[0])

    return sorted(grouped.items(), key=sort_key)
