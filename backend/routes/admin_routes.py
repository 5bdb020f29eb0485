from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import require_admin
from backend.core.errors import BookingError, to_http_exception
from backend.core.timeutils import local_now
from backend.database import get_db
from backend.models.user import User
from backend.routes.appointment_routes import AppointmentResponse
from backend.routes.auth_routes import UserResponse
from backend.routes.common import database_unavailable, ensure_database_ready, normalize_instant
from backend.services import ledger, users

router = APIRouter(tags=['admin'])


class BlockUserRequest(BaseModel):
    blocked_until: datetime

    @field_validator('blocked_until')
    @classmethod
    def normalize_blocked_until(cls, value: datetime) -> datetime:
        return normalize_instant(value)


@router.get('/appointments', response_model=list[AppointmentResponse])
def list_all_appointments(
    start_date: date | None = Query(default=None),
    end_date: date | None = Query(default=None),
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    ensure_database_ready()

    try:
        if start_date is None and end_date is None:
            return ledger.list_all(db)

        range_start = datetime.combine(start_date or date.min, time.min)
        range_end = datetime.combine(end_date or date.max, time.max)
        return ledger.by_date_range(db, range_start, range_end)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/users', response_model=list[UserResponse])
def list_users(
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        return users.list_users(db)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/users/{user_id}/block', response_model=UserResponse)
def block_user(
    user_id: int,
    data: BlockUserRequest,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    if data.blocked_until <= local_now():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Block end must be in the future.',
        )

    try:
        user = users.get_by_id(db, user_id)
        if user.id == admin.id:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail='Admins cannot block themselves.',
            )
        return users.set_block(db, user, data.blocked_until)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc


@router.post('/users/{user_id}/unblock', response_model=UserResponse)
def unblock_user(
    user_id: int,
    db: Session = Depends(get_db),
    admin: User = Depends(require_admin),
):
    try:
        user = users.get_by_id(db, user_id)
        return users.set_block(db, user, None)
    except BookingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable(db) from exc
