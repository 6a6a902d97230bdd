from contextlib import contextmanager
from typing import List, Optional

from sqlalchemy import select, update, and_, or_, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config.settings import settings
from app.db.models import AreaQueryStatus, SearchClass, Subscriber, Subscription
from app.schemas.slot_schemas import (
    ANY_VACCINE,
    Area,
    CriteriaBucket,
    Recipient,
    Vaccine,
)
from app.utils.datetime_utils import naive_utc_now
from app.utils.errors import DatabaseError
from app.utils.logging import get_logger

logger = get_logger()

ANY_AGE = 0
ANY_DOSE = 0


class AreaRegistry:
    """Storage-backed view of watched areas, their subscribers and query status.

    Every write is a single-row update committed on its own.
    """

    def __init__(self, db_session: Session, failure_threshold: Optional[int] = None):
        self.db = db_session
        self.failure_threshold = (
            failure_threshold
            if failure_threshold is not None
            else settings.AREA_FAILURE_THRESHOLD
        )

    @contextmanager
    def _write(self):
        try:
            yield
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise DatabaseError(f"Failed to persist registry update: {e}") from e

    def list_active_areas(self, search_class: SearchClass) -> List[Area]:
        """Distinct areas with at least one active, configured subscriber."""
        result = self.db.execute(
            select(Subscription.search_class, Subscription.search_value)
            .join(Subscriber, Subscriber.id == Subscription.subscriber_id)
            .outerjoin(
                AreaQueryStatus,
                and_(
                    AreaQueryStatus.search_class == Subscription.search_class,
                    AreaQueryStatus.search_value == Subscription.search_value,
                ),
            )
            .where(
                and_(
                    Subscriber.is_active == True,
                    Subscription.age_criteria.is_not(None),
                    Subscription.search_class == search_class,
                    or_(
                        AreaQueryStatus.id.is_(None),
                        AreaQueryStatus.query_fail_count < self.failure_threshold,
                    ),
                )
            )
            .distinct()
            .order_by(Subscription.search_value)
        )
        return [
            Area(search_class=row.search_class, search_value=row.search_value)
            for row in result
        ]

    def _get_or_create_status(self, area: Area) -> AreaQueryStatus:
        status = self.db.execute(
            select(AreaQueryStatus).where(
                and_(
                    AreaQueryStatus.search_class == area.search_class,
                    AreaQueryStatus.search_value == area.search_value,
                )
            )
        ).scalar_one_or_none()

        if status is None:
            status = AreaQueryStatus(
                search_class=area.search_class,
                search_value=area.search_value,
                query_fail_count=0,
            )
            self.db.add(status)
        return status

    def record_fetch_success(self, area: Area) -> None:
        with self._write():
            status = self._get_or_create_status(area)
            status.last_queried_at = naive_utc_now()
            status.last_queried_status = True

    def record_fetch_failure(self, area: Area) -> None:
        with self._write():
            status = self._get_or_create_status(area)
            status.query_fail_count = (status.query_fail_count or 0) + 1
            status.last_queried_at = naive_utc_now()
            status.last_queried_status = False

    def match_subscribers(self, area: Area, bucket: CriteriaBucket) -> List[Recipient]:
        """
        Active subscribers of the area whose criteria accept the bucket.

        Each criteria dimension matches when it holds the wildcard (age 0,
        vaccine ANY, dose 0) or exactly the bucket's value. Stored vaccine
        labels are compared in normalized form, so "Sputnik V" matches
        SPUTNIK_V.
        """
        accepted_vaccines = {ANY_VACCINE, bucket.vaccine.value}

        result = self.db.execute(
            select(
                Subscriber.id,
                Subscriber.line_user_id,
                Subscription.vaccine_criteria,
            )
            .join(Subscription, Subscriber.id == Subscription.subscriber_id)
            .where(
                and_(
                    Subscriber.is_active == True,
                    Subscription.search_class == area.search_class,
                    Subscription.search_value == area.search_value,
                    Subscription.age_criteria.is_not(None),
                    Subscription.age_criteria.in_(
                        [ANY_AGE, bucket.age_band.value]
                    ),
                    Subscription.dose_criteria.in_([ANY_DOSE, bucket.dose.value]),
                )
            )
            .distinct()
            .order_by(Subscriber.id)
        )
        return [
            Recipient(subscriber_id=row.id, line_user_id=row.line_user_id)
            for row in result
            if Vaccine.normalize_label(row.vaccine_criteria) in accepted_vaccines
        ]

    def increment_delivery_count(self, subscriber_id: int, area: Area) -> None:
        with self._write():
            self.db.execute(
                update(Subscription)
                .where(
                    and_(
                        Subscription.subscriber_id == subscriber_id,
                        Subscription.search_class == area.search_class,
                        Subscription.search_value == area.search_value,
                    )
                )
                .values(reminders_sent=Subscription.reminders_sent + 1)
            )

    def deactivate_subscriber(self, subscriber_id: int) -> None:
        with self._write():
            self.db.execute(
                update(Subscriber)
                .where(Subscriber.id == subscriber_id)
                .values(is_active=False)
            )
        logger.info("Subscriber deactivated", subscriber_id=subscriber_id)

    def list_area_statuses(
        self, page: int = 1, per_page: int = 50
    ) -> tuple[List[AreaQueryStatus], int]:
        """Paginated query statuses, most failing areas first."""
        total = self.db.execute(
            select(func.count()).select_from(AreaQueryStatus)
        ).scalar_one()
        result = self.db.execute(
            select(AreaQueryStatus)
            .order_by(
                AreaQueryStatus.query_fail_count.desc(),
                AreaQueryStatus.search_class,
                AreaQueryStatus.search_value,
            )
            .offset((page - 1) * per_page)
            .limit(per_page)
        )
        return list(result.scalars().all()), total


def get_area_registry(db_session: Session) -> AreaRegistry:
    return AreaRegistry(db_session)
