from __future__ import annotations

from typing import Iterable, List, Optional


class ValidationError(ValueError):
    """Raised when a recurrence spec, demand request or shift payload is malformed."""


class ConflictError(Exception):
    """Raised when a shift would overlap a published shift of the same staff member."""

    def __init__(self, staff_id: Optional[str], shift_ids: Iterable[str] = ()) -> None:
        self.staff_id = staff_id
        self.shift_ids: List[str] = [str(shift_id) for shift_id in shift_ids]
        super().__init__("This staff member already has a published shift during this time.")


class StoreError(Exception):
    """Raised when the persistence layer fails or a record cannot be found."""

    def __init__(self, message: str, *, not_found: bool = False) -> None:
        super().__init__(message)
        self.not_found = not_found
