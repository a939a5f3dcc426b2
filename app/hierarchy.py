"""Integrity rules for the self-referencing location and container trees.

Both trees are handled through an id-indexed adjacency map built from a
single owner-scoped query. Traversal uses an explicit stack over that map
instead of recursion or live ORM references, so depth is bounded only by
memory and a corrupted parent chain cannot loop forever.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Mapping, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from . import models
from .errors import ConflictError, ValidationError

logger = logging.getLogger(__name__)

ChildrenIndex = Mapping[int | None, Sequence[int]]


@dataclass(frozen=True)
class Dependent:
    """Rows of ``model`` whose ``column`` points at a node and block its deletion."""

    kind: str
    model: Any
    column: str
    noun: str
    hint: str


@dataclass(frozen=True)
class TreeSpec:
    """Describes one self-referencing tree: its model, parent column and dependents."""

    model: Any
    parent_column: str
    label: str
    dependents: tuple[Dependent, ...]

    @property
    def parent_attr(self):
        return getattr(self.model, self.parent_column)


LOCATION_TREE = TreeSpec(
    model=models.Location,
    parent_column="parent_location_id",
    label="location",
    dependents=(
        Dependent(
            "children",
            models.Location,
            "parent_location_id",
            "child location(s)",
            "Please delete or move them first.",
        ),
        Dependent(
            "containers",
            models.Container,
            "location_id",
            "container(s)",
            "Please move or delete them first.",
        ),
        Dependent(
            "items",
            models.Item,
            "location_id",
            "item(s)",
            "Please move or delete them first.",
        ),
    ),
)

CONTAINER_TREE = TreeSpec(
    model=models.Container,
    parent_column="parent_container_id",
    label="container",
    dependents=(
        Dependent(
            "children",
            models.Container,
            "parent_container_id",
            "child container(s)",
            "Please delete or move them first.",
        ),
        Dependent(
            "items",
            models.Item,
            "container_id",
            "item(s)",
            "Please move or delete them first.",
        ),
    ),
)


# Pure tree helpers


def children_index(
    edges: Iterable[tuple[int, int | None]],
) -> dict[int | None, list[int]]:
    """
    Build a ``parent_id -> [child ids]`` map from ``(id, parent_id)`` pairs.

    Roots are listed under the ``None`` key. Child order follows input order.
    """
    index: dict[int | None, list[int]] = defaultdict(list)
    for node_id, parent_id in edges:
        index[parent_id].append(node_id)
    return dict(index)


def iter_descendants(children: ChildrenIndex, root_id: int | None) -> Iterator[int]:
    """
    Yield every descendant of ``root_id`` exactly once, depth first.

    ``root_id`` itself is not yielded. Passing ``None`` walks the whole
    forest reachable from its roots.
    """
    seen = {root_id}
    stack = list(reversed(children.get(root_id, ())))
    while stack:
        node_id = stack.pop()
        if node_id in seen:
            continue
        seen.add(node_id)
        yield node_id
        stack.extend(reversed(children.get(node_id, ())))


def is_descendant(children: ChildrenIndex, root_id: int, candidate_id: int) -> bool:
    """Return True when ``candidate_id`` lies in the subtree below ``root_id``."""
    return any(node_id == candidate_id for node_id in iter_descendants(children, root_id))


def assemble_tree(
    nodes: Sequence[Mapping[str, Any]], parent_key: str, id_key: str = "id"
) -> list[dict[str, Any]]:
    """
    Turn a flat node list into a forest of nested dicts.

    Every node is copied and given a ``children`` list holding its direct
    descendants in input order; nodes with ``parent_key`` unset are roots.
    A node whose parent is missing from ``nodes`` is left out together
    with its subtree (see :func:`find_orphans`). The input is not modified.

    Args:
        nodes: Flat node mappings, each with ``id_key`` and ``parent_key``.
        parent_key: Name of the parent reference field.
        id_key: Name of the identifier field.

    Returns:
        list[dict]: Root nodes with nested ``children``.
    """
    copies = {node[id_key]: {**node, "children": []} for node in nodes}
    roots = []
    for node in nodes:
        node_id = node[id_key]
        parent_id = node.get(parent_key)
        if parent_id is None:
            roots.append(copies[node_id])
        elif parent_id in copies and parent_id != node_id:
            copies[parent_id]["children"].append(copies[node_id])
    return roots


def find_orphans(
    nodes: Sequence[Mapping[str, Any]], parent_key: str, id_key: str = "id"
) -> list[Mapping[str, Any]]:
    """Return the nodes :func:`assemble_tree` would leave out of the forest."""
    index = children_index((node[id_key], node.get(parent_key)) for node in nodes)
    reachable = set(iter_descendants(index, None))
    return [node for node in nodes if node[id_key] not in reachable]


# Store-backed checks


def load_children_index(db: Session, tree: TreeSpec, owner_id: int) -> dict:
    """Fetch every ``(id, parent)`` pair of the owner's tree in one query."""
    rows = db.execute(
        select(tree.model.id, tree.parent_attr).where(tree.model.user_id == owner_id)
    ).all()
    return children_index((row[0], row[1]) for row in rows)


def get_parent(db: Session, tree: TreeSpec, owner_id: int, parent_id: int):
    """
    Return the owner's node ``parent_id``.

    Raises:
        ValidationError: If it does not exist or belongs to another user.
    """
    parent = db.execute(
        select(tree.model).where(
            tree.model.id == parent_id,
            tree.model.user_id == owner_id,
        )
    ).scalar_one_or_none()
    if parent is None:
        raise ValidationError(f"Parent {tree.label} not found")
    return parent


def ensure_can_reparent(db: Session, tree: TreeSpec, node, new_parent_id: int | None):
    """
    Check that ``node`` may hang below ``new_parent_id``.

    Moving a node to the root (``None``) is always allowed. Nothing is
    written; the caller applies the change after this returns.

    Raises:
        ConflictError: If the new parent is the node itself or one of its
            descendants (``kind="cycle"``).
        ValidationError: If the new parent is missing or not owned.

    Returns:
        The new parent model instance, or ``None`` for a root.
    """
    if new_parent_id is None:
        return None
    if new_parent_id == node.id:
        raise ConflictError(
            f"{tree.label.capitalize()} cannot be its own parent", kind="cycle"
        )

    parent = get_parent(db, tree, node.user_id, new_parent_id)
    children = load_children_index(db, tree, node.user_id)
    if is_descendant(children, node.id, new_parent_id):
        logger.info(
            "Rejected re-parent of %s %s under descendant %s",
            tree.label,
            node.id,
            new_parent_id,
        )
        raise ConflictError(
            f"Cannot set a descendant {tree.label} as parent (circular reference)",
            kind="cycle",
        )
    return parent


def count_dependents(
    db: Session, node_id: int, dependents: Sequence[Dependent]
) -> dict[str, int]:
    """Count the rows of each dependent kind that point at ``node_id``."""
    counts = {}
    for dependent in dependents:
        column = getattr(dependent.model, dependent.column)
        counts[dependent.kind] = db.scalar(
            select(func.count()).select_from(dependent.model).where(column == node_id)
        ) or 0
    return counts


def ensure_no_dependents(
    db: Session, label: str, node_id: int, dependents: Sequence[Dependent]
) -> None:
    """
    Refuse deletion while any dependent rows still reference ``node_id``.

    Raises:
        ConflictError: Carrying the first blocking ``kind`` and ``count``
            and the full ``blockers`` mapping.
    """
    counts = count_dependents(db, node_id, dependents)
    blockers = {kind: count for kind, count in counts.items() if count}
    for dependent in dependents:
        count = blockers.get(dependent.kind)
        if count:
            raise ConflictError(
                f"Cannot delete {label} with {count} {dependent.noun}. {dependent.hint}",
                kind=dependent.kind,
                count=count,
                blockers=blockers,
            )


def ensure_can_delete(db: Session, tree: TreeSpec, node) -> None:
    """Precondition check run before deleting a location or container."""
    ensure_no_dependents(db, tree.label, node.id, tree.dependents)
