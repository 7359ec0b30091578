"""Challenge creation and update validation.

The validators are pure: they never touch the store and never raise, the
caller decides what to do with the returned ValidationResult.
"""

import datetime
from dataclasses import dataclass, field
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    StringConstraints,
    field_validator,
)
from pydantic import ValidationError as PydanticValidationError

from models.challenge import ChallengeType, GoalType, RewardType
from models.types import as_utc, utcnow
from services.errors import FieldError, ValidationError

NAME_PATTERN = r"^[a-zA-Z0-9\s\-_]+$"


def _rule_text(value: Any) -> Any:
    if isinstance(value, dict):
        return value.get("rule")
    return value


Title = Annotated[
    str, StringConstraints(min_length=3, max_length=100, pattern=NAME_PATTERN)
]
Description = Annotated[str, StringConstraints(min_length=10, max_length=1000)]
# rules arrive either as bare strings or as {"rule": "..."}
RuleText = Annotated[
    str,
    StringConstraints(min_length=5, max_length=200),
    BeforeValidator(_rule_text),
]
MaxParticipants = Annotated[int, Field(gt=0, le=100)]
TeamName = Annotated[
    str, StringConstraints(min_length=3, max_length=50, pattern=NAME_PATTERN)
]


class GoalDefinition(BaseModel):
    type: GoalType
    target: float = Field(gt=0, le=1_000_000)
    description: str | None = Field(default=None, min_length=5, max_length=200)


class RewardDefinition(BaseModel):
    type: RewardType
    name: str = Field(min_length=3, max_length=50)
    description: str = Field(min_length=10, max_length=200)
    badge_id: str | None = None


class _Dates(BaseModel):
    @field_validator("start_date", "end_date", check_fields=False)
    @classmethod
    def _utc(cls, value: datetime.datetime | None):
        return as_utc(value) if value is not None else None


class ChallengeDefinition(_Dates):
    model_config = ConfigDict(extra="ignore")

    title: Title
    description: Description
    type: ChallengeType
    start_date: datetime.datetime
    end_date: datetime.datetime
    goals: list[GoalDefinition] = Field(min_length=1, max_length=5)
    rewards: list[RewardDefinition] = Field(min_length=1, max_length=5)
    rules: list[RuleText] = Field(min_length=1, max_length=10)
    max_participants: MaxParticipants | None = None
    min_participants: int = Field(default=1, gt=0)


class ChallengeChanges(_Dates):
    model_config = ConfigDict(extra="ignore")

    title: Title | None = None
    description: Description | None = None
    type: ChallengeType | None = None
    start_date: datetime.datetime | None = None
    end_date: datetime.datetime | None = None
    max_participants: MaxParticipants | None = None
    min_participants: int | None = Field(default=None, gt=0)


@dataclass
class ValidationResult:
    data: BaseModel | None = None
    errors: list[FieldError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors and self.data is not None

    def unwrap(self):
        """Return the validated data or raise the collected errors"""
        if not self.ok:
            raise ValidationError("Invalid challenge data", self.errors)
        return self.data


def _field_errors(error: PydanticValidationError) -> list[FieldError]:
    return [
        FieldError(".".join(str(part) for part in err["loc"]), err["msg"])
        for err in error.errors()
    ]


def _date_errors(start, end, now: datetime.datetime) -> list[FieldError]:
    errors = []
    if start is not None and start <= now:
        errors.append(FieldError("start_date", "Start date must be in the future"))
    if end is not None and end <= now:
        errors.append(FieldError("end_date", "End date must be in the future"))
    if start is not None and end is not None and end <= start:
        errors.append(FieldError("end_date", "End date must be after start date"))
    return errors


def _participant_errors(min_participants, max_participants) -> list[FieldError]:
    if (
        min_participants is not None
        and max_participants is not None
        and min_participants > max_participants
    ):
        return [
            FieldError(
                "min_participants",
                "Minimum participants cannot exceed the maximum participants",
            )
        ]
    return []


def validate_challenge(
    payload: Any, now: datetime.datetime | None = None
) -> ValidationResult:
    now = as_utc(now) if now else utcnow()
    try:
        definition = ChallengeDefinition.model_validate(payload)
    except PydanticValidationError as e:
        return ValidationResult(errors=_field_errors(e))

    errors = _date_errors(definition.start_date, definition.end_date, now)
    if (
        definition.type == ChallengeType.competitive
        and definition.max_participants is None
    ):
        errors.append(
            FieldError(
                "max_participants",
                "Competitive challenges must have a maximum number of participants",
            )
        )
    errors += _participant_errors(
        definition.min_participants, definition.max_participants
    )
    if errors:
        return ValidationResult(errors=errors)
    return ValidationResult(data=definition)


def validate_challenge_update(
    payload: Any, now: datetime.datetime | None = None
) -> ValidationResult:
    """Every field is optional, the given ones follow the creation rules"""
    now = as_utc(now) if now else utcnow()
    try:
        changes = ChallengeChanges.model_validate(payload)
    except PydanticValidationError as e:
        return ValidationResult(errors=_field_errors(e))

    errors = _date_errors(changes.start_date, changes.end_date, now)
    errors += _participant_errors(changes.min_participants, changes.max_participants)
    if errors:
        return ValidationResult(errors=errors)
    return ValidationResult(data=changes)


class _Team(BaseModel):
    name: TeamName


def validate_team_name(name: Any) -> str:
    try:
        return _Team(name=name).name
    except PydanticValidationError as e:
        raise ValidationError("Invalid team name", _field_errors(e)) from e
