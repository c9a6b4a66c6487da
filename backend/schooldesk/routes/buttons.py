from typing import List
from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..database import get_db
from ..auth import Identity, get_current_user
from .. import schemas
from ..services import buttons

router = APIRouter(prefix="/api/buttons", tags=["buttons"])


@router.get("/location/{location_id}", response_model=List[schemas.ButtonOut])
async def list_buttons(
    location_id: UUID,
    db: Session = Depends(get_db),
    user: Identity = Depends(get_current_user),
):
    return buttons.list_visible_buttons(db, user, location_id)


@router.post("/", response_model=schemas.ButtonOut, status_code=201)
async def create_button(
    payload: schemas.ButtonCreate,
    db: Session = Depends(get_db),
    user: Identity = Depends(get_current_user),
):
    return buttons.create_button(db, user, payload)


@router.get("/{button_id}/permissions", response_model=schemas.ButtonPermissionSet)
async def get_button_permissions(
    button_id: UUID,
    db: Session = Depends(get_db),
    user: Identity = Depends(get_current_user),
):
    return buttons.get_permissions(db, user, button_id)


@router.put("/{button_id}/permissions", response_model=schemas.ButtonPermissionSet)
async def set_button_permissions(
    button_id: UUID,
    payload: schemas.ButtonPermissionSet,
    db: Session = Depends(get_db),
    user: Identity = Depends(get_current_user),
):
    return buttons.set_permissions(db, user, button_id, payload)
