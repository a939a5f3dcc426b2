"""CRUD operations for users.

This module contains database interaction logic for user accounts,
isolated from FastAPI route handlers. Inventory rows are handled by the
owner-scoped services in :mod:`app.services`.
"""

import logging

from sqlalchemy import delete, select, or_
from sqlalchemy.orm import Session

from . import models, schemas
from .errors import ConflictError

logger = logging.getLogger(__name__)


def create_user(
    db: Session, user_in: schemas.UserCreate, password_hash: str
) -> models.User:
    """
    Create and persist a new local user.

    Args:
        db (Session): SQLAlchemy database session.
        user_in (UserCreate): Incoming user data.
        password_hash (str): Securely hashed password.

    Raises:
        ConflictError: If the email or username is already registered.

    Returns:
        User: Newly created user instance.
    """
    username = user_in.username or user_in.email.split("@")[0]
    existing = db.execute(
        select(models.User).where(
            or_(models.User.email == user_in.email, models.User.username == username)
        )
    ).scalars().first()
    if existing:
        raise ConflictError(
            "Email already registered"
            if existing.email == user_in.email
            else "Username already taken",
            kind="duplicate",
        )

    user = models.User(
        email=user_in.email,
        username=username,
        password_hash=password_hash,
        auth_provider="local",
    )
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered local user %s", user.id)
    return user


def get_user_by_email(db: Session, email: str) -> models.User | None:
    """
    Retrieve a user by email address.

    Args:
        db (Session): Database session.
        email (str): User email.

    Returns:
        User | None: User if found, otherwise ``None``.
    """
    return db.execute(
        select(models.User).where(models.User.email == email)
    ).scalar_one_or_none()


def get_user_by_id(db: Session, user_id: int) -> models.User | None:
    """
    Retrieve a user by primary key.

    Args:
        db (Session): Database session.
        user_id (int): User identifier.

    Returns:
        User | None: User if found, otherwise ``None``.
    """
    return db.execute(
        select(models.User).where(models.User.id == user_id)
    ).scalar_one_or_none()


def get_or_create_google_user(
    db: Session,
    google_id: str,
    email: str,
    display_name: str | None = None,
    picture: str | None = None,
) -> models.User:
    """
    Resolve a verified Google identity to a user.

    An existing Google user is refreshed, an existing local account with
    the same email is linked, otherwise a new ``google`` user is created
    without a password.

    Args:
        db (Session): Database session.
        google_id (str): Google account subject identifier.
        email (str): Verified email address.
        display_name (str | None): Preferred username, used when free.
        picture (str | None): Profile picture URL.

    Returns:
        User: The signed-in user.
    """
    user = db.execute(
        select(models.User).where(models.User.google_id == google_id)
    ).scalar_one_or_none()
    if user is None:
        user = get_user_by_email(db, email)
        if user is not None:
            user.google_id = google_id
            user.auth_provider = "google"
            logger.info("Linked Google account to user %s", user.id)
        else:
            username = display_name or email.split("@")[0]
            taken = db.execute(
                select(models.User.id).where(models.User.username == username)
            ).first()
            user = models.User(
                email=email,
                username=None if taken else username,
                google_id=google_id,
                auth_provider="google",
            )
            db.add(user)
    if picture:
        user.profile_picture = picture
    db.commit()
    db.refresh(user)
    return user


def update_profile_picture(
    db: Session, user: models.User, picture_url: str
) -> models.User:
    """
    Update the profile picture URL for a user.

    Args:
        db (Session): Database session.
        user (User): Target user.
        picture_url (str): URL of uploaded picture.

    Returns:
        User: Updated user instance.
    """
    target = get_user_by_id(db, user.id) or user
    target.profile_picture = picture_url
    db.add(target)
    db.commit()
    db.refresh(target)
    return target


def delete_user(db: Session, user: models.User) -> None:
    """
    Delete a user and, through database cascades, everything they own.

    Args:
        db (Session): Database session.
        user (User): User to delete.
    """
    db.execute(delete(models.User).where(models.User.id == user.id))
    db.commit()
    db.expunge_all()
    logger.info("Deleted user %s and all owned inventory", user.id)
