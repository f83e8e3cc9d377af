# intelboard/errors.py
from __future__ import annotations


class IntelboardError(Exception):
    """Base class for errors raised by intelboard."""


class TimestampError(IntelboardError):
    """An item has no usable publication timestamp."""

    def __init__(self, item_id: str):
        super().__init__(f"Item {item_id!r} has a missing or unparseable publication timestamp")
        self.item_id = item_id


class StoreError(IntelboardError):
    pass


class NotFoundError(StoreError):
    pass


class OwnershipError(StoreError):
    """Only the creator of a record may change or delete it."""


class AnalysisError(IntelboardError):
    """The analysis proxy failed; reported once per request."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code
