from fastapi import APIRouter, BackgroundTasks, Depends, Request
from sqlalchemy.orm import Session
from slowapi import Limiter
from slowapi.util import get_remote_address

from ..config import settings
from ..database import get_db
from .. import audit, notify, schemas
from ..auth import authenticate_user, accessible_location_ids
from ..services import accounts

limiter = Limiter(key_func=get_remote_address, enabled=not settings.testing)

RESET_REQUESTED_MESSAGE = (
    "If an account exists for this email, a message with instructions to reset the password has been sent."
)

router = APIRouter(prefix="/api/auth", tags=["auth"])


@router.post("/login", response_model=schemas.Token)
@limiter.limit(settings.rate_limit_login)
async def login(request: Request, data: schemas.LoginRequest, db: Session = Depends(get_db)):
    user, token = authenticate_user(db, data.email, data.password)
    audit.log_action(db, user.id, "login", "user", user.id)
    db.commit()
    db.refresh(user)
    return schemas.Token(
        access_token=token,
        user=schemas.UserOut.model_validate(user),
        location_ids=accessible_location_ids(db, user),
    )


@router.post("/request-password-reset", response_model=schemas.StatusMessage)
@limiter.limit(settings.rate_limit_login)
async def request_password_reset(
    request: Request,
    data: schemas.PasswordResetRequest,
    background_tasks: BackgroundTasks,
    sender: notify.EmailSender = Depends(notify.get_email_sender),
):
    # lookup, token write and mail all happen after the response for every address
    background_tasks.add_task(accounts.request_password_reset_job, data.email, sender)
    return schemas.StatusMessage(message=RESET_REQUESTED_MESSAGE)


@router.post("/reset-password", response_model=schemas.StatusMessage)
async def reset_password(data: schemas.PasswordResetConfirm, db: Session = Depends(get_db)):
    accounts.reset_password(db, data.token, data.new_password)
    return schemas.StatusMessage(message="Password updated. You can now sign in.")
