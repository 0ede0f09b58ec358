import logging
from collections.abc import Callable
from datetime import datetime
from typing import List, Optional

from sqlalchemy import update
from sqlmodel import Session, select

from errors import InvalidTransition, RequestNotFound, ValidationError
from models import APPROVED, PENDING, REJECTED, Request, utcnow

logger = logging.getLogger(__name__)


class RequestLedger:
    """
    Owns seekers' requests for donations.

    pending --> approved | rejected, both terminal. Checks against the target
    donation belong to the Coordinator; nothing here commits.
    """

    def __init__(self, session: Session, now_fn: Callable[[], datetime] = utcnow) -> None:
        self.session = session
        self.now_fn = now_fn

    def create(
        self,
        requester_id: Optional[int],
        donation_id: Optional[int],
        message: Optional[str] = None,
    ) -> Request:
        missing = [
            name
            for name, value in (("requester_id", requester_id), ("donation_id", donation_id))
            if value is None
        ]
        if missing:
            raise ValidationError(
                f"Missing {', '.join(missing)}",
                errors=[{"loc": [name], "msg": "Field required", "type": "missing"} for name in missing],
            )

        message = (message or "").strip() or None
        req = Request(
            requester_id=requester_id,
            donation_id=donation_id,
            message=message,
            status=PENDING,
        )
        self.session.add(req)
        self.session.flush()
        logger.info(
            "Request %s created by requester %s for donation %s",
            req.id, requester_id, donation_id,
        )
        return req

    def get(self, request_id: int) -> Request:
        req = self.session.get(Request, request_id)
        if req is None:
            raise RequestNotFound(request_id)
        return req

    def list(
        self,
        donation_id: Optional[int] = None,
        requester_id: Optional[int] = None,
        status: Optional[str] = None,
    ) -> List[Request]:
        query = select(Request)
        if donation_id is not None:
            query = query.where(Request.donation_id == donation_id)
        if requester_id is not None:
            query = query.where(Request.requester_id == requester_id)
        if status is not None:
            query = query.where(Request.status == status)
        query = query.order_by(Request.id.desc())
        return list(self.session.exec(query).all())

    def set_status(self, request_id: int, new_status: str) -> Request:
        if new_status not in (APPROVED, REJECTED):
            req = self.get(request_id)
            raise InvalidTransition("request", req.status, new_status)

        stmt = (
            update(Request)
            .where(Request.id == request_id, Request.status == PENDING)
            .values(status=new_status, responded_at=self.now_fn())
        )
        self.session.flush()
        result = self.session.connection().execute(stmt)

        req = self.get(request_id)
        self.session.refresh(req)
        if result.rowcount != 1:
            logger.warning(
                "Refused request %s transition %s -> %s", request_id, req.status, new_status
            )
            raise InvalidTransition("request", req.status, new_status)

        logger.info("Request %s %s", request_id, new_status)
        return req
