"""Account registration hook for the external user-management subsystem.

Only the pieces the ledger depends on live here: a user row and its balance,
created together so no user ever exists without a balance.
"""
from __future__ import annotations

from sqlalchemy.orm import Session

from kudos.models import User
from kudos.services.ledger import open_balance


def create_user(
    db: Session,
    *,
    name: str,
    user_id: int | None = None,
    display_name: str | None = None,
    department: str | None = None,
    is_admin: bool = False,
) -> User:
    user = User(
        id=user_id,
        name=name,
        display_name=display_name or name,
        department=department,
        is_admin=is_admin,
    )
    db.add(user)
    db.flush()
    open_balance(db, user.id)
    return user


def user_names(db: Session, user_ids: list[int]) -> dict[int, str]:
    if not user_ids:
        return {}
    rows = (
        db.query(User.id, User.name, User.display_name)
        .filter(User.id.in_(user_ids))
        .all()
    )
    return {row[0]: row[2] or row[1] for row in rows}


__all__ = ["create_user", "user_names"]
