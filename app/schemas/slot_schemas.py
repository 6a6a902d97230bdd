import enum
import re
import datetime as dt
from typing import Optional

from pydantic import BaseModel, ConfigDict

from app.db.models import SearchClass

# Wildcard value stored in subscription.vaccine_criteria
ANY_VACCINE = "ANY"
SESSION_DATE_FORMAT = "%d-%m-%Y"


class AgeBand(enum.Enum):
    UNDER_45 = 18
    AGE_45_PLUS = 45

    @classmethod
    def from_min_age(cls, min_age: Optional[int]) -> "AgeBand":
        if min_age is None or min_age < 45:
            return cls.UNDER_45
        return cls.AGE_45_PLUS

    @property
    def label(self) -> str:
        return "18-44" if self is AgeBand.UNDER_45 else "45+"


class Dose(enum.Enum):
    ANY = 0
    FIRST = 1
    SECOND = 2

    @property
    def label(self) -> str:
        return "Any" if self is Dose.ANY else f"Dose {self.value}"


class Vaccine(enum.Enum):
    ANY = "ANY"
    COVISHIELD = "COVISHIELD"
    COVAXIN = "COVAXIN"
    SPUTNIK_V = "SPUTNIK_V"
    ZYCOV_D = "ZYCOV_D"
    CORBEVAX = "CORBEVAX"
    COVOVAX = "COVOVAX"

    @staticmethod
    def normalize_label(label: Optional[str]) -> str:
        """Upper-case a vaccine label and collapse spaces/dashes: "Sputnik V" -> "SPUTNIK_V"."""
        if not label:
            return ANY_VACCINE
        return re.sub(r"[\s\-]+", "_", str(label).strip()).upper() or ANY_VACCINE

    @classmethod
    def from_label(cls, label: Optional[str]) -> "Vaccine":
        """Unknown or missing labels fall back to ANY."""
        try:
            return cls(cls.normalize_label(label))
        except ValueError:
            return cls.ANY


class Area(BaseModel):
    model_config = ConfigDict(frozen=True)

    search_class: SearchClass
    search_value: str

    def __str__(self) -> str:
        return f"{self.search_class.value} {self.search_value}"


class CriteriaBucket(BaseModel):
    """Grouping key of a classified slot: vaccine x age band x dose."""

    model_config = ConfigDict(frozen=True)

    vaccine: Vaccine
    age_band: AgeBand
    dose: Dose

    def describe(self) -> str:
        vaccine = "Any" if self.vaccine is Vaccine.ANY else self.vaccine.value
        return f"Age: {self.age_band.label} | Vaccine: {vaccine} | Dose: {self.dose.label}"


class SlotRecord(BaseModel):
    model_config = ConfigDict(frozen=True)

    center_id: Optional[int] = None
    center_name: Optional[str] = None
    fee_type: Optional[str] = None
    pincode: Optional[str] = None
    date: str
    available_capacity: int = 0
    available_capacity_dose1: Optional[int] = None
    available_capacity_dose2: Optional[int] = None
    min_age: Optional[int] = None
    vaccine: Optional[str] = None
    dose: Dose = Dose.ANY

    @property
    def capacity(self) -> int:
        """Capacity relevant to the dose this record was emitted for."""
        if self.dose is Dose.FIRST:
            return self.available_capacity_dose1 or 0
        if self.dose is Dose.SECOND:
            return self.available_capacity_dose2 or 0
        return self.available_capacity

    @property
    def session_date(self) -> Optional[dt.date]:
        try:
            return dt.datetime.strptime(self.date, SESSION_DATE_FORMAT).date()
        except (TypeError, ValueError):
            return None


class Recipient(BaseModel):
    model_config = ConfigDict(frozen=True)

    subscriber_id: int
    line_user_id: str
