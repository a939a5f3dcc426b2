"""Domain errors raised by services and mapped to HTTP responses in ``main``.

Services never raise ``HTTPException`` directly; they raise one of the
errors below and the application-level handlers turn them into JSON.
"""

from fastapi import status


class InventoryError(Exception):
    """Base class for expected, caller-facing failures."""

    status_code = status.HTTP_400_BAD_REQUEST

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail

    def to_dict(self) -> dict:
        return {"detail": self.detail}


class ValidationError(InventoryError):
    """Missing or malformed input, or a reference to a row the caller cannot use."""

    status_code = status.HTTP_400_BAD_REQUEST


class NotFoundError(InventoryError):
    """The addressed row does not exist or belongs to someone else."""

    status_code = status.HTTP_404_NOT_FOUND


class ConflictError(InventoryError):
    """
    The request is well formed but clashes with current state.

    Raised for hierarchy cycles, duplicate category names and deletes
    blocked by dependent rows.

    Attributes:
        kind (str): What blocked the operation, e.g. ``"cycle"``,
            ``"duplicate"``, ``"children"``, ``"containers"``, ``"items"``.
        count (int | None): Number of blocking rows for ``kind``.
        blockers (dict[str, int]): Every non-zero blocking count.
    """

    status_code = status.HTTP_409_CONFLICT

    def __init__(
        self,
        detail: str,
        kind: str,
        count: int | None = None,
        blockers: dict[str, int] | None = None,
    ):
        super().__init__(detail)
        self.kind = kind
        self.count = count
        self.blockers = blockers or {}

    def to_dict(self) -> dict:
        body = {"detail": self.detail, "kind": self.kind}
        if self.count is not None:
            body["count"] = self.count
        if self.blockers:
            body["blockers"] = self.blockers
        return body


class DependencyError(InventoryError):
    """
    An external collaborator (vision, barcode lookup, language model,
    image storage) was unreachable, unconfigured, or answered garbage.

    Callers may retry with reduced input, e.g. without the image.
    """

    status_code = status.HTTP_502_BAD_GATEWAY

    def __init__(self, detail: str, source: str):
        super().__init__(detail)
        self.source = source

    def to_dict(self) -> dict:
        return {"detail": self.detail, "kind": "dependency", "source": self.source}
