# Overview: Service-layer operations for user administration (listing, stats, promotion, demotion).

from __future__ import annotations

from sqlalchemy import func

from ..extensions import db
from ..models import User, ROLE_ADMIN, ROLE_CUSTOMER, VALID_ROLES
from ..time_utils import days_ago, utcnow
from ..validation import ConflictError, NotFoundError, ValidationError
from .concurrency import lock_for_update, run_with_retry


def list_users(role: str | None = None, search: str | None = None) -> list[User]:
    query = db.session.query(User)

    if role:
        role = role.upper()
        if role not in VALID_ROLES:
            raise ValidationError(f"role must be one of {', '.join(VALID_ROLES)}")
        query = query.filter(User.role == role)

    if search:
        pattern = f"%{search.strip().lower()}%"
        query = query.filter(db.or_(
            func.lower(User.email).like(pattern),
            func.lower(User.first_name).like(pattern),
            func.lower(User.last_name).like(pattern),
        ))

    return query.order_by(User.created_at.desc(), User.id.desc()).all()


def user_stats() -> dict:
    total = db.session.query(func.count(User.id)).scalar() or 0
    admins = db.session.query(func.count(User.id)).filter(User.role == ROLE_ADMIN).scalar() or 0
    customers = db.session.query(func.count(User.id)).filter(User.role == ROLE_CUSTOMER).scalar() or 0
    recent = db.session.query(func.count(User.id)).filter(User.created_at >= days_ago(30)).scalar() or 0
    return {
        "total_users": int(total),
        "admin_count": int(admins),
        "customer_count": int(customers),
        "recent_signups": int(recent),
    }


def promote_user(user_id: int, actor_user_id: int) -> User:
    """
    Make a user an ADMIN, recording who promoted them and when. Does not commit.

    Raises:
        NotFoundError: no such user
        ConflictError: already an admin
    """
    def _op():
        user = lock_for_update(db.session.query(User).filter_by(id=user_id)).first()
        if not user:
            raise NotFoundError("User not found")
        if user.role == ROLE_ADMIN:
            raise ConflictError("User is already an admin")

        user.role = ROLE_ADMIN
        user.promoted_by_user_id = actor_user_id
        user.promoted_at = utcnow()
        db.session.flush()
        return user

    return run_with_retry(_op)


def demote_user(user_id: int, actor_user_id: int) -> User:
    """
    Return an ADMIN to CUSTOMER. Does not commit.

    Admin rows are locked before counting so two concurrent demotions cannot
    both pass the last-admin check.

    Raises:
        NotFoundError: no such user
        ConflictError: not an admin, self-demotion, or last remaining admin
    """
    def _op():
        user = lock_for_update(db.session.query(User).filter_by(id=user_id)).first()
        if not user:
            raise NotFoundError("User not found")
        if user.role != ROLE_ADMIN:
            raise ConflictError("User is not an admin")
        if user.id == actor_user_id:
            raise ConflictError("You cannot demote yourself")

        admins = lock_for_update(db.session.query(User).filter_by(role=ROLE_ADMIN)).all()
        if len(admins) <= 1:
            raise ConflictError("Cannot demote the last admin. Promote another user first.")

        user.role = ROLE_CUSTOMER
        user.promoted_by_user_id = None
        user.promoted_at = None
        db.session.flush()
        return user

    return run_with_retry(_op)
