"""Friend graph service.

A friendship is a single row keyed by the ordered pair (low id, high id),
so adding or removing it updates both sides at once.
"""

from __future__ import annotations

from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from friendradar.models.friendship import Friendship
from friendradar.models.user import User


def _ordered(user_id: int, other_id: int) -> tuple[int, int]:
    return (user_id, other_id) if user_id < other_id else (other_id, user_id)


def get_friendship(db: Session, user_id: int, other_id: int) -> Friendship | None:
    low, high = _ordered(user_id, other_id)
    return db.execute(
        select(Friendship).where(Friendship.user_low_id == low, Friendship.user_high_id == high)
    ).scalar_one_or_none()


def are_friends(db: Session, user_id: int, other_id: int) -> bool:
    if user_id == other_id:
        return False
    return get_friendship(db, user_id, other_id) is not None


def add_friend(db: Session, user_id: int, friend_id: int) -> Friendship:
    """Create the mutual friendship. Adding an existing friend returns the existing link."""
    if user_id == friend_id:
        raise ValueError("Cannot add yourself as a friend")
    if db.get(User, friend_id) is None:
        raise ValueError("User not found")

    existing = get_friendship(db, user_id, friend_id)
    if existing:
        return existing

    low, high = _ordered(user_id, friend_id)
    link = Friendship(user_low_id=low, user_high_id=high)
    db.add(link)
    try:
        db.commit()
    except IntegrityError:
        # concurrent add of the same pair won the race
        db.rollback()
        return get_friendship(db, user_id, friend_id)
    db.refresh(link)
    return link


def remove_friend(db: Session, user_id: int, friend_id: int) -> bool:
    """Delete the friendship for both sides. Returns False if there was none."""
    link = get_friendship(db, user_id, friend_id)
    if link is None:
        return False
    db.delete(link)
    db.commit()
    return True


def get_friend_ids(db: Session, user_id: int) -> list[int]:
    """Ids of everyone the user is friends with."""
    result = db.execute(
        select(Friendship).where(
            or_(Friendship.user_low_id == user_id, Friendship.user_high_id == user_id)
        ).order_by(Friendship.id)
    )
    return [
        link.user_high_id if link.user_low_id == user_id else link.user_low_id
        for link in result.scalars().all()
    ]


def get_friends(db: Session, user_id: int) -> list[User]:
    ids = get_friend_ids(db, user_id)
    if not ids:
        return []
    result = db.execute(select(User).where(User.id.in_(ids)).order_by(User.id))
    return list(result.scalars().all())


def set_ghost_mode(db: Session, user: User, enabled: bool) -> User:
    user.is_ghost_mode = enabled
    db.commit()
    db.refresh(user)
    return user


def search_users(db: Session, user_id: int, query: str, limit: int = 20) -> list[User]:
    """Active users whose name or email contains ``query``, excluding the caller."""
    q = (query or "").strip()
    if len(q) < 2:
        raise ValueError("Search query must be at least 2 characters")
    pattern = f"%{q}%"
    result = db.execute(
        select(User)
        .where(
            User.id != user_id,
            User.is_active.is_(True),
            or_(User.full_name.ilike(pattern), User.email.ilike(pattern)),
        )
        .order_by(User.full_name, User.id)
        .limit(limit)
    )
    return list(result.scalars().all())
