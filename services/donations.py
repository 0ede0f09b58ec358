import logging
from collections.abc import Callable, Mapping
from datetime import datetime
from typing import Any, List, Optional, Union

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import func, or_, update
from sqlmodel import Session, select

from errors import DonationNotFound, InvalidTransition, ValidationError
from models import (
    AVAILABLE,
    DELIVERED,
    DELIVERY_STATUSES,
    RESERVED,
    Donation,
    utcnow,
)
from schemas import DonationCreate, DonationSummary, RankingEntry

logger = logging.getLogger(__name__)

RANKING_FIELDS = ("type", "condition", "zone", "city", "delivery_status")


class DonationRegistry:
    """
    Owns donations and their delivery status.

    available --(reserve for a requester)--> reserved --(deliver)--> delivered

    Status changes are compare-and-set UPDATEs, so of two callers racing on
    the same donation only one sees the expected status and wins. Nothing
    here commits; the caller owns the transaction.
    """

    def __init__(self, session: Session, now_fn: Callable[[], datetime] = utcnow) -> None:
        self.session = session
        self.now_fn = now_fn

    def create(self, attributes: Union[DonationCreate, Mapping[str, Any]]) -> Donation:
        try:
            data = DonationCreate.model_validate(attributes)
        except PydanticValidationError as exc:
            raise ValidationError(
                "Invalid donation attributes",
                errors=exc.errors(include_url=False, include_context=False),
            ) from exc

        donation = Donation(**data.model_dump(), delivery_status=AVAILABLE)
        self.session.add(donation)
        self.session.flush()
        logger.info(
            "Donation %s created (type=%s, city=%s, donor=%s)",
            donation.id, donation.type, donation.city, donation.donor_id,
        )
        return donation

    def get(self, donation_id: int, for_update: bool = False) -> Donation:
        """With `for_update`, lock the row until the transaction ends."""
        donation = self.session.get(Donation, donation_id, with_for_update=for_update)
        if donation is None:
            raise DonationNotFound(donation_id)
        return donation

    def list(
        self,
        status: Optional[str] = None,
        donor_id: Optional[int] = None,
        requester_id: Optional[int] = None,
        q: Optional[str] = None,
        type: Optional[str] = None,
        condition: Optional[str] = None,
        city: Optional[str] = None,
    ) -> List[Donation]:
        """
        Newest first. Filters that are given are all applied; `q` matches
        description or type, case-insensitively.
        """
        query = select(Donation)
        if status is not None:
            query = query.where(Donation.delivery_status == status)
        if donor_id is not None:
            query = query.where(Donation.donor_id == donor_id)
        if requester_id is not None:
            query = query.where(Donation.requester_id == requester_id)
        if q:
            pattern = f"%{q.strip()}%"
            query = query.where(
                or_(Donation.description.ilike(pattern), Donation.type.ilike(pattern))
            )
        if type is not None:
            query = query.where(Donation.type == type)
        if condition is not None:
            query = query.where(Donation.condition == condition)
        if city is not None:
            query = query.where(Donation.city == city)
        query = query.order_by(Donation.id.desc())
        return list(self.session.exec(query).all())

    def transition(
        self,
        donation_id: int,
        new_status: str,
        requester_id: Optional[int] = None,
    ) -> Donation:
        now = self.now_fn()
        if new_status == RESERVED:
            self.get(donation_id)
            if requester_id is None:
                raise ValidationError("requester_id is required to reserve a donation")
            stmt = (
                update(Donation)
                .where(Donation.id == donation_id, Donation.delivery_status == AVAILABLE)
                .values(delivery_status=RESERVED, requester_id=requester_id, reserved_at=now)
            )
        elif new_status == DELIVERED:
            stmt = (
                update(Donation)
                .where(Donation.id == donation_id, Donation.delivery_status == RESERVED)
                .values(delivery_status=DELIVERED, delivered_at=now)
            )
        else:
            donation = self.get(donation_id)
            logger.warning(
                "Refused donation %s transition %s -> %s",
                donation_id, donation.delivery_status, new_status,
            )
            raise InvalidTransition("donation", donation.delivery_status, new_status)

        self.session.flush()
        result = self.session.connection().execute(stmt)

        donation = self.get(donation_id)
        self.session.refresh(donation)
        if result.rowcount != 1:
            logger.warning(
                "Refused donation %s transition %s -> %s",
                donation_id, donation.delivery_status, new_status,
            )
            raise InvalidTransition("donation", donation.delivery_status, new_status)

        if new_status == RESERVED:
            logger.info("Donation %s reserved for requester %s", donation_id, requester_id)
        else:
            logger.info("Donation %s delivered", donation_id)
        return donation

    def ranking(self, field: str) -> List[RankingEntry]:
        """Count donations per value of `field`, most common first."""
        if field not in RANKING_FIELDS:
            raise ValidationError(
                f"Cannot rank by '{field}'; expected one of {', '.join(RANKING_FIELDS)}"
            )
        column = getattr(Donation, field)
        rows = self.session.exec(select(column, func.count()).group_by(column)).all()
        total = sum(count for _, count in rows)

        entries = [
            RankingEntry(
                value=value if value else "unspecified",
                count=count,
                percent=round(count * 100 / total),
            )
            for value, count in rows
        ]
        entries.sort(key=lambda e: (-e.count, e.value))
        return entries

    def summary(self) -> DonationSummary:
        by_status = {status: 0 for status in DELIVERY_STATUSES}
        for entry in self.ranking("delivery_status"):
            by_status[entry.value] = entry.count

        cities = self.session.exec(select(func.count(func.distinct(Donation.city)))).one()
        types = self.session.exec(select(func.count(func.distinct(Donation.type)))).one()
        return DonationSummary(
            total=sum(by_status.values()),
            by_status=by_status,
            cities=cities,
            types=types,
        )
