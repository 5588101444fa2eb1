"""
Input validation for progression operations

Every mutation validates its arguments here before touching storage, so a
rejected call never has partial effects.
"""

import logging
from typing import Optional, TypeVar

from pydantic import BaseModel, Field, StrictInt, field_validator
from pydantic import ValidationError as PydanticValidationError

from progression.exceptions import ValidationError

logger = logging.getLogger(__name__)

InputModel = TypeVar("InputModel", bound=BaseModel)


class UserInput(BaseModel):
    """A caller-supplied user identifier, whitespace trimmed"""
    user_id: str = Field(..., min_length=1, max_length=128)

    @field_validator('user_id')
    @classmethod
    def strip_identifier(cls, v: str) -> str:
        trimmed = v.strip()
        if not trimmed:
            raise ValueError("Identifier cannot be blank")
        return trimmed


class PointAwardInput(UserInput):
    """
    Validate a point award

    Constraints:
    - amount is a non-zero integer (negative for administrative corrections)
    - reason is a non-blank label, e.g. 'achievement:first_story'
    """
    amount: StrictInt
    reason: str = Field(..., min_length=1, max_length=200)

    @field_validator('amount')
    @classmethod
    def non_zero(cls, v: int) -> int:
        if v == 0:
            raise ValueError("Amount must be a non-zero integer")
        return v

    @field_validator('reason')
    @classmethod
    def strip_reason(cls, v: str) -> str:
        trimmed = v.strip()
        if not trimmed:
            raise ValueError("Reason cannot be blank")
        return trimmed


class HistoryInput(UserInput):
    """Point history page; limit defaults to POINT_HISTORY_LIMIT when omitted"""
    limit: Optional[StrictInt] = Field(default=None, ge=1)


class AchievementUnlockInput(UserInput):
    achievement_id: str = Field(..., min_length=1, max_length=128)

    @field_validator('achievement_id')
    @classmethod
    def strip_achievement(cls, v: str) -> str:
        trimmed = v.strip()
        if not trimmed:
            raise ValueError("Identifier cannot be blank")
        return trimmed


def validate_input(model: type[InputModel], operation: str, **data) -> InputModel:
    """
    Build an input model, converting pydantic failures to ValidationError

    The raw ``user_id`` in ``data``, when it is a string, is attached to the
    error for logging.

    Raises:
        ValidationError: naming the first offending field
    """
    try:
        return model(**data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        field = str(first["loc"][0]) if first.get("loc") else None
        user_id = data.get("user_id")
        raise ValidationError(
            message=first["msg"],
            field=field,
            value=data.get(field) if field else None,
            user_id=user_id if isinstance(user_id, str) else None,
            operation=operation
        ) from e
