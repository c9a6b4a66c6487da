from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from .. import auth, notify, schemas
from ..services import accounts

router = APIRouter(prefix="/api/users", tags=["users"])


@router.get("/me", response_model=schemas.ProfileOut)
async def read_profile(
    db: Session = Depends(get_db),
    current_user: auth.Identity = Depends(auth.get_current_user),
):
    user, locations = accounts.load_profile(db, current_user)
    profile = schemas.ProfileOut.model_validate(user)
    profile.locations = [schemas.LocationOut.model_validate(loc) for loc in locations]
    return profile


@router.post("/", response_model=schemas.UserCreatedOut, status_code=201)
def create_user(
    payload: schemas.UserCreate,
    db: Session = Depends(get_db),
    current_user: auth.Identity = Depends(auth.get_current_user),
    sender: notify.EmailSender = Depends(notify.get_email_sender),
):
    user, sent = accounts.create_account(db, current_user, payload, sender=sender)
    return schemas.UserCreatedOut(user=schemas.UserOut.model_validate(user), temporary_password_sent=sent)


@router.get("/location/{location_id}", response_model=List[schemas.UserOut])
async def list_location_users(
    location_id: UUID,
    db: Session = Depends(get_db),
    current_user: auth.Identity = Depends(auth.get_current_user),
):
    return accounts.list_location_accounts(db, current_user, location_id)


@router.get("/deactivated", response_model=List[schemas.UserOut])
async def list_deactivated_users(
    db: Session = Depends(get_db),
    current_user: auth.Identity = Depends(auth.get_current_user),
):
    return accounts.list_deactivated_accounts(db, current_user)


@router.post("/{user_id}/deactivate", response_model=schemas.UserOut)
async def deactivate_user(
    user_id: UUID,
    db: Session = Depends(get_db),
    current_user: auth.Identity = Depends(auth.get_current_user),
):
    return accounts.set_account_active(db, current_user, user_id, active=False)


@router.post("/{user_id}/reactivate", response_model=schemas.UserOut)
async def reactivate_user(
    user_id: UUID,
    db: Session = Depends(get_db),
    current_user: auth.Identity = Depends(auth.get_current_user),
):
    return accounts.set_account_active(db, current_user, user_id, active=True)
