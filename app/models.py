"""Database models for the Personal Inventory API.

This module defines SQLAlchemy ORM models used by the application.
Every inventory row belongs to exactly one user; deleting the user
removes everything they own through ``ON DELETE CASCADE``.
"""

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Float,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    func,
)
from sqlalchemy.orm import relationship

from .database import Base


class User(Base):
    """
    SQLAlchemy model representing an application user.

    A user authenticates either locally (password hash) or through
    Google (``google_id``), and owns all inventory rows below.
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, nullable=True)
    email = Column(String(255), unique=True, index=True, nullable=False)
    password_hash = Column(String(255), nullable=True)
    google_id = Column(String(255), unique=True, nullable=True)
    auth_provider = Column(String(20), default="local", nullable=False)
    profile_picture = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    #: Rows owned by the user, removed by the database on user delete
    categories = relationship(
        "Category", back_populates="owner", cascade="all, delete", passive_deletes=True
    )
    locations = relationship(
        "Location", back_populates="owner", cascade="all, delete", passive_deletes=True
    )
    containers = relationship(
        "Container", back_populates="owner", cascade="all, delete", passive_deletes=True
    )
    items = relationship(
        "Item", back_populates="owner", cascade="all, delete", passive_deletes=True
    )


class Category(Base):
    """A flat, per-user label for items. Names are unique per owner."""

    __tablename__ = "categories"
    __table_args__ = (UniqueConstraint("user_id", "name", name="uq_category_owner_name"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)

    owner = relationship("User", back_populates="categories")
    items = relationship("Item", back_populates="category", passive_deletes=True)


class Location(Base):
    """
    A place such as a room, shelf or drawer.

    Locations form a tree through ``parent_location_id``. The tree must
    stay acyclic; see :mod:`app.hierarchy`.
    """

    __tablename__ = "locations"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    parent_location_id = Column(
        Integer,
        ForeignKey("locations.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    image_path = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    owner = relationship("User", back_populates="locations")
    parent = relationship("Location", remote_side=[id], back_populates="children")
    children = relationship(
        "Location",
        back_populates="parent",
        order_by="Location.name",
        passive_deletes=True,
    )
    containers = relationship(
        "Container", back_populates="location", order_by="Container.name", passive_deletes=True
    )
    items = relationship(
        "Item", back_populates="location", order_by="Item.name", passive_deletes=True
    )


class Container(Base):
    """
    A box, bin or bag that holds items.

    Containers nest through ``parent_container_id`` and may independently
    sit in a location through ``location_id``.
    """

    __tablename__ = "containers"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    location_id = Column(
        Integer, ForeignKey("locations.id", ondelete="SET NULL"), nullable=True, index=True
    )
    parent_container_id = Column(
        Integer,
        ForeignKey("containers.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    barcode = Column(String(100), nullable=True, index=True)
    barcode_type = Column(String(20), nullable=True)
    image_path = Column(String(500), nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    owner = relationship("User", back_populates="containers")
    location = relationship("Location", back_populates="containers")
    parent = relationship("Container", remote_side=[id], back_populates="children")
    children = relationship(
        "Container",
        back_populates="parent",
        order_by="Container.name",
        passive_deletes=True,
    )
    items = relationship(
        "Item", back_populates="container", order_by="Item.name", passive_deletes=True
    )

    @property
    def location_name(self) -> str | None:
        return self.location.name if self.location else None


class Item(Base):
    """
    A tracked belonging.

    Placement fields (``category_id``, ``container_id``, ``location_id``)
    are independent optional references; an item may be placed in a
    location, a container, both, or neither.
    """

    __tablename__ = "items"
    __table_args__ = (CheckConstraint("quantity >= 0", name="ck_item_quantity"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(
        Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name = Column(String(200), nullable=False, index=True)
    description = Column(Text, nullable=True)
    quantity = Column(Integer, default=1, nullable=False)
    category_id = Column(
        Integer, ForeignKey("categories.id", ondelete="SET NULL"), nullable=True, index=True
    )
    container_id = Column(
        Integer, ForeignKey("containers.id", ondelete="SET NULL"), nullable=True, index=True
    )
    location_id = Column(
        Integer, ForeignKey("locations.id", ondelete="SET NULL"), nullable=True, index=True
    )
    barcode = Column(String(100), nullable=True, index=True)
    barcode_type = Column(String(20), nullable=True)
    image_path = Column(String(500), nullable=True)
    ai_identified = Column(Boolean, default=False, nullable=False)
    ai_confidence = Column(Float, nullable=True)
    created_at = Column(DateTime, server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime, server_default=func.now(), onupdate=func.now(), nullable=False
    )

    owner = relationship("User", back_populates="items")
    category = relationship("Category", back_populates="items")
    container = relationship("Container", back_populates="items")
    location = relationship("Location", back_populates="items")

    @property
    def category_name(self) -> str | None:
        return self.category.name if self.category else None

    @property
    def container_name(self) -> str | None:
        return self.container.name if self.container else None

    @property
    def location_name(self) -> str | None:
        return self.location.name if self.location else None
