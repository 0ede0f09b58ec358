import logging
from collections.abc import Callable
from datetime import datetime
from typing import List, Optional

from sqlmodel import Session

from db import transaction
from errors import (
    ConflictError,
    DonationUnavailable,
    InvalidTransition,
    PermissionDenied,
    RequesterNotFound,
    ValidationError,
)
from models import (
    APPROVED,
    AVAILABLE,
    DELIVERED,
    REJECTED,
    RESERVED,
    PENDING,
    Donation,
    Request,
    User,
    utcnow,
)
from schemas import Actor, Inconsistency
from services.donations import DonationRegistry
from services.requests import RequestLedger

logger = logging.getLogger(__name__)


class Coordinator:
    """
    Keeps donations and requests consistent with each other.

    Every operation runs as one transaction on the session: it commits when
    the operation returns and rolls back entirely when it raises.
    """

    def __init__(self, session: Session, now_fn: Callable[[], datetime] = utcnow) -> None:
        self.session = session
        self.donations = DonationRegistry(session, now_fn)
        self.requests = RequestLedger(session, now_fn)

    def request_donation(
        self,
        actor: Actor,
        donation_id: int,
        message: Optional[str] = None,
        requester_id: Optional[int] = None,
    ) -> Request:
        if actor.role != "seeker":
            raise PermissionDenied("Only seekers can request donations.")
        if requester_id is None:
            requester_id = actor.user_id
        elif requester_id != actor.user_id:
            raise PermissionDenied("You can only request donations for yourself.")

        with transaction(self.session):
            # row lock holds off a concurrent approval until the request is in
            donation = self.donations.get(donation_id, for_update=True)
            if donation.delivery_status != AVAILABLE:
                logger.warning(
                    "Requester %s asked for donation %s while it is %s",
                    requester_id, donation_id, donation.delivery_status,
                )
                raise DonationUnavailable(donation_id, donation.delivery_status)
            if self.session.get(User, requester_id) is None:
                raise RequesterNotFound(requester_id)
            req = self.requests.create(requester_id, donation_id, message)
        return req

    def approve_request(self, actor: Actor, request_id: int) -> Request:
        with transaction(self.session):
            req = self.requests.get(request_id)
            donation = self.donations.get(req.donation_id)
            self._ensure_manages(actor, donation)

            req = self.requests.set_status(request_id, APPROVED)
            try:
                self.donations.transition(donation.id, RESERVED, req.requester_id)
            except InvalidTransition as exc:
                logger.warning(
                    "Approval of request %s rolled back: donation %s is %s",
                    request_id, donation.id, exc.current,
                )
                raise ConflictError(
                    f"Request {request_id} was not approved: donation {donation.id} "
                    f"is already {exc.current}",
                    request_id=request_id,
                    donation_id=donation.id,
                ) from exc
        return req

    def reject_request(self, actor: Actor, request_id: int) -> Request:
        with transaction(self.session):
            req = self.requests.get(request_id)
            donation = self.donations.get(req.donation_id)
            self._ensure_manages(actor, donation)
            req = self.requests.set_status(request_id, REJECTED)
        return req

    def set_request_status(self, actor: Actor, request_id: int, status: str) -> Request:
        if status == APPROVED:
            return self.approve_request(actor, request_id)
        if status == REJECTED:
            return self.reject_request(actor, request_id)
        req = self.requests.get(request_id)
        raise InvalidTransition("request", req.status, status)

    def confirm_delivery(self, actor: Actor, donation_id: int) -> Donation:
        with transaction(self.session):
            donation = self.donations.get(donation_id)
            if donation.delivery_status != RESERVED:
                raise InvalidTransition("donation", donation.delivery_status, DELIVERED)
            if actor.user_id not in (donation.donor_id, donation.requester_id):
                raise PermissionDenied(
                    "Only the donor or the requester can confirm this delivery."
                )
            donation = self.donations.transition(donation_id, DELIVERED)
        return donation

    def set_donation_status(
        self,
        actor: Actor,
        donation_id: int,
        status: str,
        requester_id: Optional[int] = None,
    ) -> Donation:
        """
        Move a donation along its lifecycle on behalf of `actor`.

        Reserving goes through the requester's pending request, which gets
        approved, so a reserved donation always has an approved request.
        """
        if status == DELIVERED:
            return self.confirm_delivery(actor, donation_id)

        donation = self.donations.get(donation_id)
        self._ensure_manages(actor, donation)
        if status != RESERVED:
            raise InvalidTransition("donation", donation.delivery_status, status)
        if requester_id is None:
            raise ValidationError("requester_id is required to reserve a donation")
        if donation.delivery_status != AVAILABLE:
            raise InvalidTransition("donation", donation.delivery_status, status)

        pending = self.requests.list(
            donation_id=donation_id, requester_id=requester_id, status=PENDING
        )
        if not pending:
            raise InvalidTransition(
                "donation",
                donation.delivery_status,
                status,
                reason=f"requester {requester_id} has no pending request for it",
            )
        # oldest pending request of that requester
        self.approve_request(actor, pending[-1].id)
        return self.donations.get(donation_id)

    def find_inconsistencies(self) -> List[Inconsistency]:
        """
        Flag approved requests whose donation is not held for their
        requester, and held donations without a matching approved request.
        """
        findings: List[Inconsistency] = []
        approved_pairs = set()

        for req in self.requests.list(status=APPROVED):
            approved_pairs.add((req.donation_id, req.requester_id))
            donation = self.session.get(Donation, req.donation_id)
            if donation is None:
                findings.append(Inconsistency(
                    donation_id=req.donation_id,
                    request_id=req.id,
                    reason="approved request points at a missing donation",
                ))
            elif donation.delivery_status == AVAILABLE:
                findings.append(Inconsistency(
                    donation_id=donation.id,
                    request_id=req.id,
                    reason="approved request but donation is still available",
                ))
            elif donation.requester_id != req.requester_id:
                findings.append(Inconsistency(
                    donation_id=donation.id,
                    request_id=req.id,
                    reason=(
                        f"approved request for requester {req.requester_id} but donation "
                        f"is {donation.delivery_status} for requester {donation.requester_id}"
                    ),
                ))

        held = self.donations.list(status=RESERVED) + self.donations.list(status=DELIVERED)
        for donation in held:
            if (donation.id, donation.requester_id) not in approved_pairs:
                findings.append(Inconsistency(
                    donation_id=donation.id,
                    reason=(
                        f"donation is {donation.delivery_status} for requester "
                        f"{donation.requester_id} without an approved request"
                    ),
                ))

        for finding in findings:
            logger.warning(
                "Inconsistency on donation %s (request %s): %s",
                finding.donation_id, finding.request_id, finding.reason,
            )
        return findings

    def _ensure_manages(self, actor: Actor, donation: Donation) -> None:
        if actor.role != "donor":
            raise PermissionDenied("Only donors can manage requests.")
        if donation.donor_id is not None and donation.donor_id != actor.user_id:
            raise PermissionDenied("You can only manage requests for your own donations.")
