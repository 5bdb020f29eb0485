"""User directory: lookups, profile changes and account blocking."""

import logging
from datetime import datetime

import bcrypt
from sqlalchemy.orm import Session

from backend.core.errors import Conflict, NotFound, ValidationError
from backend.models.appointment import Appointment
from backend.models.user import User

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ('name', 'email', 'mobile', 'address')


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode(), bcrypt.gensalt()).decode()


def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode(), password_hash.encode())
    except ValueError:
        logger.warning('Stored password hash is not a valid bcrypt hash')
        return False


def get_by_id(db: Session, user_id: int) -> User:
    user = db.query(User).filter(User.id == user_id).first()
    if user is None:
        raise NotFound('User not found.')
    return user


def get_by_username(db: Session, username: str) -> User | None:
    return db.query(User).filter(User.username == username).first()


def get_by_email(db: Session, email: str) -> User | None:
    return db.query(User).filter(User.email == email).first()


def get_by_mobile(db: Session, mobile: str) -> User | None:
    return db.query(User).filter(User.mobile == mobile).first()


def list_users(db: Session) -> list[User]:
    return db.query(User).order_by(User.id.asc()).all()


def _ensure_unique(db: Session, user_id: int | None, email: str | None, mobile: str | None) -> None:
    if email:
        existing = get_by_email(db, email)
        if existing is not None and existing.id != user_id:
            raise Conflict('Email already exists.')
    if mobile:
        existing = get_by_mobile(db, mobile)
        if existing is not None and existing.id != user_id:
            raise Conflict('Mobile number already exists.')


def create_user(
    db: Session,
    username: str,
    password: str,
    name: str,
    email: str,
    mobile: str | None = None,
    address: str | None = None,
    is_admin: bool = False,
) -> User:
    if get_by_username(db, username) is not None:
        raise Conflict('Username already exists.')
    _ensure_unique(db, None, email, mobile)

    user = User(
        username=username,
        password_hash=hash_password(password),
        name=name,
        email=email,
        mobile=mobile,
        address=address,
        is_admin=is_admin,
        created_at=datetime.utcnow(),
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info('Registered user %s (%s)', user.id, user.username)
    return user


def authenticate(db: Session, username: str, password: str) -> User | None:
    user = get_by_username(db, username)
    if user is None or not verify_password(password, user.password_hash):
        return None
    return user


def update_user(db: Session, user: User, changes: dict) -> User:
    updates = {field: value for field, value in changes.items() if field in PROFILE_FIELDS and value is not None}
    if 'email' in updates:
        updates['email'] = updates['email'].strip().lower()
    _ensure_unique(db, user.id, updates.get('email'), updates.get('mobile'))

    for field, value in updates.items():
        setattr(user, field, value)

    db.commit()
    db.refresh(user)
    return user


def change_password(db: Session, user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise ValidationError('Current password is incorrect.')

    user.password_hash = hash_password(new_password)
    db.commit()
    logger.info('Password changed for user %s', user.id)


def delete_user(db: Session, user: User) -> None:
    user_id = user.id
    db.query(Appointment).filter(Appointment.user_id == user_id).delete(synchronize_session=False)
    db.delete(user)
    db.commit()
    logger.info('Deleted user %s', user_id)


def set_block(db: Session, user: User, blocked_until: datetime | None) -> User:
    user.blocked_until = blocked_until
    db.commit()
    db.refresh(user)
    if blocked_until is None:
        logger.info('Unblocked user %s', user.id)
    else:
        logger.info('Blocked user %s until %s', user.id, blocked_until)
    return user
