from typing import Optional, List

from fastapi import APIRouter

from db import SessionDep
from models import Request as RequestModel
from schemas import Inconsistency, RequestCreate, RequestStatusUpdate
from services.coordinator import Coordinator
from services.requests import RequestLedger
from .auth import ActorDep

router = APIRouter(tags=["requests"])


@router.post("/", response_model=RequestModel, status_code=201)
def create_request(request_data: RequestCreate, session: SessionDep, actor: ActorDep):
    new_request = Coordinator(session).request_donation(
        actor,
        request_data.donation_id,
        message=request_data.message,
        requester_id=request_data.requester_id,
    )
    session.refresh(new_request)
    return new_request


@router.get("/", response_model=List[RequestModel])
def list_requests(
    session: SessionDep,
    donation_id: Optional[int] = None,
    requester_id: Optional[int] = None,
    status: Optional[str] = None,
):
    return RequestLedger(session).list(
        donation_id=donation_id, requester_id=requester_id, status=status
    )


@router.get("/inconsistencies", response_model=List[Inconsistency])
def list_inconsistencies(session: SessionDep):
    """
    Approved requests and held donations that do not agree with each other.
    """
    return Coordinator(session).find_inconsistencies()


@router.get("/{request_id}", response_model=RequestModel)
def get_request(request_id: int, session: SessionDep):
    return RequestLedger(session).get(request_id)


@router.patch("/{request_id}", response_model=RequestModel)
def update_request_status(
    request_id: int,
    update: RequestStatusUpdate,
    session: SessionDep,
    actor: ActorDep,
):
    """
    Approve or reject a pending request. Approving reserves the donation
    for the requester.
    """
    db_request = Coordinator(session).set_request_status(actor, request_id, update.status)
    session.refresh(db_request)
    return db_request
