from typing import List, Optional

from fastapi import APIRouter, HTTPException

from db import SessionDep, transaction
from models import Donation
from schemas import (
    DonationCreate,
    DonationStatusUpdate,
    DonationSummary,
    RankingEntry,
)
from services.coordinator import Coordinator
from services.donations import DonationRegistry
from .auth import ActorDep

router = APIRouter(tags=["donations"])


@router.post("/", response_model=Donation, status_code=201)
def create_donation(donation_in: DonationCreate, session: SessionDep, actor: ActorDep):
    """
    Offer a new donation. The logged-in donor becomes its owner.
    """
    if actor.role != "donor":
        raise HTTPException(status_code=403, detail="Only donors can create donations.")

    registry = DonationRegistry(session)
    with transaction(session):
        donation = registry.create(donation_in.model_copy(update={"donor_id": actor.user_id}))
    session.refresh(donation)
    return donation


@router.get("/", response_model=List[Donation])
def list_donations(
    session: SessionDep,
    status: Optional[str] = None,
    donor_id: Optional[int] = None,
    requester_id: Optional[int] = None,
    q: Optional[str] = None,
    type: Optional[str] = None,
    condition: Optional[str] = None,
    city: Optional[str] = None,
):
    """
    List donations, newest first. Filters combine; `q` searches description
    and type.
    """
    return DonationRegistry(session).list(
        status=status,
        donor_id=donor_id,
        requester_id=requester_id,
        q=q,
        type=type,
        condition=condition,
        city=city,
    )


@router.get("/stats/summary", response_model=DonationSummary)
def donation_summary(session: SessionDep):
    return DonationRegistry(session).summary()


@router.get("/stats/ranking", response_model=List[RankingEntry])
def donation_ranking(session: SessionDep, field: str = "city"):
    """
    Count donations per city, zone, type, condition or delivery status.
    """
    return DonationRegistry(session).ranking(field)


@router.get("/{donation_id}", response_model=Donation)
def get_donation(donation_id: int, session: SessionDep):
    return DonationRegistry(session).get(donation_id)


@router.put("/{donation_id}/status", response_model=Donation)
def update_donation_status(
    donation_id: int,
    update: DonationStatusUpdate,
    session: SessionDep,
    actor: ActorDep,
):
    donation = Coordinator(session).set_donation_status(
        actor, donation_id, update.status, requester_id=update.requester_id
    )
    session.refresh(donation)
    return donation


@router.post("/{donation_id}/delivery", response_model=Donation)
def confirm_delivery(donation_id: int, session: SessionDep, actor: ActorDep):
    """
    Confirm that a reserved donation reached its requester.
    """
    donation = Coordinator(session).confirm_delivery(actor, donation_id)
    session.refresh(donation)
    return donation
