"""
Error taxonomy for the progress engine.

Every failure is scoped to one command against one sequence/item and none is
fatal to the process. Each error carries:
- Error code (for client handling)
- User message (safe to show to users)
- HTTP status code (for API responses)

"Already completed, retried" is NOT an error: the ledger answers it with the
existing record.

After any of these errors the caller's cached unlock view is known to be wrong
and must be re-fetched.
"""

from datetime import date
from typing import Any, Dict, Optional


class ProgressError(Exception):
    """Base exception for all engine errors."""

    def __init__(
        self,
        message: str,
        error_code: str,
        user_message: Optional[str] = None,
        http_status: int = 400,
        **kwargs: Any,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.user_message = user_message or "Something went wrong. Please try again."
        self.http_status = http_status
        self.metadata = kwargs

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for API responses"""
        return {
            "error": {
                "code": self.error_code,
                "message": self.user_message,
                "type": self.__class__.__name__,
                **{k: _jsonable(v) for k, v in self.metadata.items()},
            }
        }


def _jsonable(value: Any) -> Any:
    if isinstance(value, date):
        return value.isoformat()
    return value


class ItemLocked(ProgressError):
    """
    Completion attempted on an item whose predecessor is not completed.

    Recoverable: the UI re-syncs unlock state and shows the correct item.
    """

    def __init__(
        self,
        sequence_id: str,
        item_number: int,
        error_code: str = "item_locked",
        user_message: str = "Complete the previous day first.",
    ):
        super().__init__(
            message=f"Item {item_number} of sequence {sequence_id} is locked",
            error_code=error_code,
            user_message=user_message,
            http_status=409,
            sequence_id=sequence_id,
            item_number=item_number,
        )
        self.sequence_id = sequence_id
        self.item_number = item_number


class ReflectionLocked(ItemLocked):
    """Experiment reflection requested before enough days were completed."""

    def __init__(self, sequence_id: str, completed_count: int, required: int):
        super().__init__(
            sequence_id=sequence_id,
            item_number=required,
            error_code="reflection_locked",
            user_message=f"Complete {required} days to unlock your reflection.",
        )
        self.completed_count = completed_count
        self.required = required
        self.metadata["completed_count"] = completed_count


class OutOfRange(ProgressError):
    """
    Item number outside the sequence's bounds.

    Indicates a client/content mismatch; the user only sees "not found".
    """

    def __init__(self, sequence_id: str, item_number: int, total_items: Optional[int]):
        super().__init__(
            message=(
                f"Item {item_number} is outside sequence {sequence_id} "
                f"(total_items={total_items})"
            ),
            error_code="out_of_range",
            user_message="Not found.",
            http_status=404,
        )
        self.sequence_id = sequence_id
        self.item_number = item_number
        self.total_items = total_items


class TooEarly(ProgressError):
    """Experiment day requested before its calendar date."""

    def __init__(self, sequence_id: str, item_number: int, available_on: date):
        super().__init__(
            message=(
                f"Item {item_number} of sequence {sequence_id} "
                f"is not available until {available_on.isoformat()}"
            ),
            error_code="too_early",
            user_message=f"Available on {available_on.isoformat()}.",
            http_status=409,
            sequence_id=sequence_id,
            item_number=item_number,
            available_on=available_on,
        )
        self.sequence_id = sequence_id
        self.item_number = item_number
        self.available_on = available_on


class SequenceNotFound(ProgressError):
    """The content repository does not know this sequence."""

    def __init__(self, sequence_id: str):
        super().__init__(
            message=f"Unknown sequence {sequence_id}",
            error_code="sequence_not_found",
            user_message="Not found.",
            http_status=404,
        )
        self.sequence_id = sequence_id
