from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from uuid import UUID

from ..database import get_db
from ..auth import Identity, get_current_user
from .. import notify, schemas
from ..services import invitations, locations

router = APIRouter(prefix="/api/locations", tags=["locations"])


@router.get("/", response_model=list[schemas.LocationOut])
async def list_locations(
    db: Session = Depends(get_db),
    user: Identity = Depends(get_current_user),
):
    return locations.list_all_locations(db, user)


@router.get("/mine", response_model=list[schemas.LocationOut])
async def my_locations(
    db: Session = Depends(get_db),
    user: Identity = Depends(get_current_user),
):
    return locations.list_my_locations(db, user)


@router.post("/", response_model=schemas.LocationOut, status_code=201)
async def create_location(
    loc: schemas.LocationCreate,
    db: Session = Depends(get_db),
    user: Identity = Depends(get_current_user),
):
    return locations.create_location(db, user, loc.name)


@router.post("/{location_id}/members", response_model=schemas.UserOut, status_code=201)
async def add_location_member(
    location_id: UUID,
    member: schemas.LocationMemberAdd,
    db: Session = Depends(get_db),
    user: Identity = Depends(get_current_user),
):
    return locations.add_member(db, user, location_id, member.user_id)


# sync handler: mail delivery blocks, FastAPI runs it in the threadpool
@router.post("/invite", response_model=schemas.InvitationCreatedOut, status_code=201)
def invite_to_location(
    payload: schemas.InvitationCreate,
    db: Session = Depends(get_db),
    user: Identity = Depends(get_current_user),
    sender: notify.EmailSender = Depends(notify.get_email_sender),
):
    invitation, sent = invitations.invite(db, user, payload, sender=sender)
    return schemas.InvitationCreatedOut(
        invitation=schemas.InvitationOut.model_validate(invitation), invitation_sent=sent
    )


@router.post("/accept-invitation", response_model=schemas.StatusMessage)
async def accept_invitation(payload: schemas.InvitationAccept, db: Session = Depends(get_db)):
    invitations.accept(db, payload.token, payload.password)
    return schemas.StatusMessage(message="Invitation accepted. You can now sign in.")


@router.post("/user-status", response_model=schemas.MembershipOut)
async def set_user_location_status(
    payload: schemas.MembershipStatusUpdate,
    db: Session = Depends(get_db),
    user: Identity = Depends(get_current_user),
):
    return locations.set_membership_status(db, user, payload.user_id, payload.location_id, payload.is_active)


@router.get("/inactive-locations/{user_id}", response_model=list[schemas.LocationOut])
async def inactive_locations(
    user_id: UUID,
    db: Session = Depends(get_db),
    user: Identity = Depends(get_current_user),
):
    return locations.list_inactive_locations(db, user, user_id)
