"""Owner-scoped resource services for categories, locations, containers and items.

Each service is constructed with an explicit database session and the
authenticated owner; every query it issues is filtered by that owner.
Services raise the domain errors from :mod:`app.errors` and leave HTTP
concerns to the routers.
"""

import logging
from typing import Any, Dict, List

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, joinedload

from . import models, schemas
from .errors import ConflictError, NotFoundError, ValidationError
from .hierarchy import (
    CONTAINER_TREE,
    LOCATION_TREE,
    Dependent,
    assemble_tree,
    ensure_can_delete,
    ensure_can_reparent,
    ensure_no_dependents,
    find_orphans,
    get_parent,
)

logger = logging.getLogger(__name__)

CATEGORY_DEPENDENTS = (
    Dependent(
        "items",
        models.Item,
        "category_id",
        "item(s)",
        "Please reassign or delete items first.",
    ),
)


def clean_name(name: str | None, label: str) -> str:
    """Strip ``name`` and reject it when nothing is left."""
    cleaned = (name or "").strip()
    if not cleaned:
        raise ValidationError(f"{label} name is required")
    return cleaned


def search_pattern(search: str) -> str:
    """``ilike`` pattern matching ``search`` literally, wildcards included."""
    escaped = search.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def row_to_dict(obj, *extra: str) -> Dict[str, Any]:
    """Column values of ``obj`` plus the named extra attributes."""
    data = {column.key: getattr(obj, column.key) for column in obj.__table__.columns}
    for attr in extra:
        data[attr] = getattr(obj, attr)
    return data


class OwnedService:
    """Common plumbing for services whose rows carry ``user_id``."""

    model: Any = None
    label = "Resource"

    def __init__(self, db: Session, owner: models.User):
        self.db = db
        self.owner = owner

    def _owned(self, model=None):
        model = model or self.model
        return select(model).where(model.user_id == self.owner.id)

    def get(self, obj_id: int):
        """
        Return the owner's row ``obj_id``.

        Raises:
            NotFoundError: If the row is absent or owned by someone else.
        """
        obj = self.db.execute(
            self._owned().where(self.model.id == obj_id)
        ).scalar_one_or_none()
        if obj is None:
            raise NotFoundError(f"{self.label} not found")
        return obj

    def count(self) -> int:
        return self.db.scalar(
            select(func.count())
            .select_from(self.model)
            .where(self.model.user_id == self.owner.id)
        )

    def _reference(self, model, ref_id: int | None, label: str):
        """Resolve an optional foreign reference inside the owner's data."""
        if ref_id is None:
            return None
        obj = self.db.execute(
            self._owned(model).where(model.id == ref_id)
        ).scalar_one_or_none()
        if obj is None:
            raise ValidationError(f"{label} not found")
        return obj

    def _counts(self, column, model) -> Dict[int, int]:
        """Owner-scoped ``column value -> row count`` for non-null values."""
        rows = self.db.execute(
            select(column, func.count())
            .where(model.user_id == self.owner.id, column.is_not(None))
            .group_by(column)
        ).all()
        return {key: count for key, count in rows}

    def _save(self, obj):
        self.db.add(obj)
        self.db.commit()
        self.db.refresh(obj)
        return obj

    def _remove(self, obj) -> None:
        self.db.delete(obj)
        self.db.commit()
        logger.info(
            "Deleted %s %s for user %s", self.label.lower(), obj.id, self.owner.id
        )

    def set_image(self, obj_id: int, image_path: str):
        """Attach an uploaded image URL to the owner's row ``obj_id``."""
        obj = self.get(obj_id)
        obj.image_path = image_path
        return self._save(obj)


class CategoryService(OwnedService):
    """Categories: flat labels with per-owner unique names."""

    model = models.Category
    label = "Category"

    def list(self) -> List[Dict[str, Any]]:
        """All categories ordered by name, each with its ``item_count``."""
        categories = self.db.scalars(
            self._owned().order_by(models.Category.name)
        ).all()
        counts = self._counts(models.Item.category_id, models.Item)
        return [
            {**row_to_dict(category), "item_count": counts.get(category.id, 0)}
            for category in categories
        ]

    def _ensure_unique(self, name: str, exclude_id: int | None = None) -> None:
        stmt = self._owned().where(models.Category.name == name)
        if exclude_id is not None:
            stmt = stmt.where(models.Category.id != exclude_id)
        if self.db.execute(stmt).scalar_one_or_none() is not None:
            raise ConflictError(
                "Category with this name already exists", kind="duplicate"
            )

    def _commit_unique(self, category: models.Category) -> models.Category:
        try:
            return self._save(category)
        except IntegrityError:
            self.db.rollback()
            raise ConflictError(
                "Category with this name already exists", kind="duplicate"
            )

    def create(self, payload: schemas.CategoryCreate) -> models.Category:
        name = clean_name(payload.name, self.label)
        self._ensure_unique(name)
        category = models.Category(
            user_id=self.owner.id, name=name, description=payload.description
        )
        return self._commit_unique(category)

    def update(self, category_id: int, payload: schemas.CategoryUpdate):
        category = self.get(category_id)
        changes = payload.model_dump(exclude_unset=True)
        if "name" in changes:
            changes["name"] = clean_name(changes["name"], self.label)
            if changes["name"] != category.name:
                self._ensure_unique(changes["name"], exclude_id=category.id)
        for key, value in changes.items():
            setattr(category, key, value)
        return self._commit_unique(category)

    def delete(self, category_id: int) -> None:
        category = self.get(category_id)
        ensure_no_dependents(self.db, "category", category.id, CATEGORY_DEPENDENTS)
        self._remove(category)


class LocationService(OwnedService):
    """Locations: a per-owner tree linked through ``parent_location_id``."""

    model = models.Location
    label = "Location"

    def list(self, flat: bool = False, search: str | None = None) -> List[dict]:
        """
        List the owner's locations with child, container and item counts.

        Args:
            flat (bool): Return plain rows instead of a nested tree.
            search (str | None): Substring filter on name or description.
                Matches are always returned flat, since their ancestors
                may not match.

        Returns:
            List[dict]: Location rows, nested under ``children`` in tree mode.
        """
        stmt = self._owned().order_by(models.Location.name, models.Location.id)
        if search:
            pattern = search_pattern(search)
            stmt = stmt.where(
                or_(
                    models.Location.name.ilike(pattern, escape="\\"),
                    models.Location.description.ilike(pattern, escape="\\"),
                )
            )
        locations = self.db.scalars(stmt).all()

        child_counts = self._counts(models.Location.parent_location_id, models.Location)
        container_counts = self._counts(models.Container.location_id, models.Container)
        item_counts = self._counts(models.Item.location_id, models.Item)
        rows = [
            {
                **row_to_dict(location),
                "child_count": child_counts.get(location.id, 0),
                "container_count": container_counts.get(location.id, 0),
                "item_count": item_counts.get(location.id, 0),
            }
            for location in locations
        ]
        if flat or search:
            return rows
        return self._tree(rows)

    def _tree(self, rows: List[dict]) -> List[dict]:
        orphans = find_orphans(rows, LOCATION_TREE.parent_column)
        if orphans:
            logger.warning(
                "Leaving %d location(s) with a missing parent out of the tree for user %s: %s",
                len(orphans),
                self.owner.id,
                [row["id"] for row in orphans],
            )
        return assemble_tree(rows, LOCATION_TREE.parent_column)

    def create(self, payload: schemas.LocationCreate) -> models.Location:
        name = clean_name(payload.name, self.label)
        if payload.parent_location_id is not None:
            get_parent(self.db, LOCATION_TREE, self.owner.id, payload.parent_location_id)
        location = models.Location(
            user_id=self.owner.id,
            name=name,
            description=payload.description,
            parent_location_id=payload.parent_location_id,
        )
        return self._save(location)

    def update(self, location_id: int, payload: schemas.LocationUpdate):
        """
        Partially update a location.

        Changing ``parent_location_id`` runs the re-parent checks first;
        an explicit ``null`` moves the location to the root.
        """
        location = self.get(location_id)
        changes = payload.model_dump(exclude_unset=True)
        if "name" in changes:
            changes["name"] = clean_name(changes["name"], self.label)
        if (
            "parent_location_id" in changes
            and changes["parent_location_id"] != location.parent_location_id
        ):
            ensure_can_reparent(
                self.db, LOCATION_TREE, location, changes["parent_location_id"]
            )
        for key, value in changes.items():
            setattr(location, key, value)
        return self._save(location)

    def delete(self, location_id: int) -> None:
        location = self.get(location_id)
        ensure_can_delete(self.db, LOCATION_TREE, location)
        self._remove(location)


class ContainerService(OwnedService):
    """Containers: a per-owner tree with an independent location placement."""

    model = models.Container
    label = "Container"

    def list(
        self,
        flat: bool = False,
        location_id: int | None = None,
        search: str | None = None,
    ) -> List[dict]:
        """
        List the owner's containers with child and item counts.

        In tree mode with ``location_id`` set, containers whose parent
        sits in another location are left out of the tree, as with any
        node whose parent is not part of the listing.
        """
        stmt = (
            self._owned()
            .options(joinedload(models.Container.location))
            .order_by(models.Container.name, models.Container.id)
        )
        if location_id is not None:
            stmt = stmt.where(models.Container.location_id == location_id)
        if search:
            pattern = search_pattern(search)
            stmt = stmt.where(
                or_(
                    models.Container.name.ilike(pattern, escape="\\"),
                    models.Container.description.ilike(pattern, escape="\\"),
                    models.Container.barcode.ilike(pattern, escape="\\"),
                )
            )
        containers = self.db.scalars(stmt).all()

        child_counts = self._counts(
            models.Container.parent_container_id, models.Container
        )
        item_counts = self._counts(models.Item.container_id, models.Item)
        rows = [
            {
                **row_to_dict(container, "location_name"),
                "child_count": child_counts.get(container.id, 0),
                "item_count": item_counts.get(container.id, 0),
            }
            for container in containers
        ]
        if flat or search:
            return rows
        orphans = find_orphans(rows, CONTAINER_TREE.parent_column)
        if orphans:
            logger.warning(
                "Leaving %d container(s) with a missing parent out of the tree for user %s",
                len(orphans),
                self.owner.id,
            )
        return assemble_tree(rows, CONTAINER_TREE.parent_column)

    def get_by_barcode(self, barcode: str) -> models.Container:
        container = self.db.scalars(
            self._owned().where(models.Container.barcode == barcode)
        ).first()
        if container is None:
            raise NotFoundError("Container not found")
        return container

    def create(self, payload: schemas.ContainerCreate) -> models.Container:
        name = clean_name(payload.name, self.label)
        self._reference(models.Location, payload.location_id, "Location")
        if payload.parent_container_id is not None:
            get_parent(
                self.db, CONTAINER_TREE, self.owner.id, payload.parent_container_id
            )
        container = models.Container(
            user_id=self.owner.id,
            name=name,
            description=payload.description,
            location_id=payload.location_id,
            parent_container_id=payload.parent_container_id,
            barcode=payload.barcode,
            barcode_type=payload.barcode_type,
        )
        return self._save(container)

    def update(self, container_id: int, payload: schemas.ContainerUpdate):
        container = self.get(container_id)
        changes = payload.model_dump(exclude_unset=True)
        if "name" in changes:
            changes["name"] = clean_name(changes["name"], self.label)
        if changes.get("location_id") is not None:
            self._reference(models.Location, changes["location_id"], "Location")
        if (
            "parent_container_id" in changes
            and changes["parent_container_id"] != container.parent_container_id
        ):
            ensure_can_reparent(
                self.db, CONTAINER_TREE, container, changes["parent_container_id"]
            )
        for key, value in changes.items():
            setattr(container, key, value)
        return self._save(container)

    def delete(self, container_id: int) -> None:
        container = self.get(container_id)
        ensure_can_delete(self.db, CONTAINER_TREE, container)
        self._remove(container)


class ItemService(OwnedService):
    """Items: leaf rows placed by independent category/container/location links."""

    model = models.Item
    label = "Item"

    def _enriched(self):
        return self._owned().options(
            joinedload(models.Item.category),
            joinedload(models.Item.container),
            joinedload(models.Item.location),
        )

    def list(
        self,
        search: str | None = None,
        category_id: int | None = None,
        container_id: int | None = None,
        location_id: int | None = None,
        limit: int | None = None,
    ) -> List[models.Item]:
        """
        List the owner's items, newest first.

        Args:
            search (str | None): Substring match on name, description or barcode.
            category_id (int | None): Only items in this category.
            container_id (int | None): Only items in this container.
            location_id (int | None): Only items directly in this location.
            limit (int | None): Maximum number of rows.

        Returns:
            List[Item]: Matching items with related rows loaded.
        """
        stmt = self._enriched()
        if search:
            pattern = search_pattern(search)
            stmt = stmt.where(
                or_(
                    models.Item.name.ilike(pattern, escape="\\"),
                    models.Item.description.ilike(pattern, escape="\\"),
                    models.Item.barcode.ilike(pattern, escape="\\"),
                )
            )
        if category_id is not None:
            stmt = stmt.where(models.Item.category_id == category_id)
        if container_id is not None:
            stmt = stmt.where(models.Item.container_id == container_id)
        if location_id is not None:
            stmt = stmt.where(models.Item.location_id == location_id)
        stmt = stmt.order_by(models.Item.created_at.desc(), models.Item.id.desc())
        if limit is not None:
            stmt = stmt.limit(limit)
        return self.db.scalars(stmt).unique().all()

    def find_by_barcode(self, barcode: str) -> models.Item | None:
        return self.db.scalars(
            self._enriched().where(models.Item.barcode == barcode)
        ).first()

    def get_by_barcode(self, barcode: str) -> models.Item:
        item = self.find_by_barcode(barcode)
        if item is None:
            raise NotFoundError("Item not found")
        return item

    def _check_references(self, fields: dict) -> None:
        self._reference(models.Category, fields.get("category_id"), "Category")
        self._reference(models.Container, fields.get("container_id"), "Container")
        self._reference(models.Location, fields.get("location_id"), "Location")

    def create(self, payload: schemas.ItemCreate) -> models.Item:
        fields = payload.model_dump()
        fields["name"] = clean_name(fields["name"], self.label)
        self._check_references(fields)
        item = models.Item(user_id=self.owner.id, **fields)
        return self._save(item)

    def update(self, item_id: int, payload: schemas.ItemUpdate) -> models.Item:
        item = self.get(item_id)
        changes = payload.model_dump(exclude_unset=True)
        if "name" in changes:
            changes["name"] = clean_name(changes["name"], self.label)
        if "quantity" in changes and changes["quantity"] is None:
            raise ValidationError("Quantity must be a non-negative integer")
        self._check_references(changes)
        for key, value in changes.items():
            setattr(item, key, value)
        return self._save(item)

    def delete(self, item_id: int) -> None:
        item = self.get(item_id)
        self._remove(item)
