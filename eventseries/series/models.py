"""Data models for event series and their materialized occurrences."""

from datetime import date, datetime, time, timezone
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator, model_validator

from ..exceptions import OccurrenceValidationError
from ..recurrence.patterns import RecurrencePattern, RecurrenceRule, normalize_weekday, pattern_for_rule
from ..timezone.service import TimezoneService

UTC = timezone.utc

# Attributes copied from a series onto each occurrence it generates
SHARED_FIELDS = ("title", "description", "location_id", "user_id", "categories", "published")


def _require_text(value: str) -> str:
    value = value.strip()
    if not value:
        raise ValueError("must not be blank")
    return value


def _dedupe(values: list[Any]) -> list[Any]:
    seen: list[Any] = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


class Series(BaseModel):
    """Recurring event definition that generates occurrences."""

    id: Optional[int] = Field(default=None, description="Series ID, assigned by the store")
    title: str = Field(..., description="Title copied to every occurrence")
    description: str = Field(..., description="Description copied to every occurrence")
    location_id: int = Field(..., description="Location reference")
    user_id: int = Field(..., description="Owner reference")
    categories: list[int] = Field(..., min_length=1, description="Category references")

    # Recurrence definition
    day_array: list[str] = Field(..., min_length=1, description="Weekday names, e.g. Monday")
    rule: RecurrenceRule = Field(..., description="Recurrence rule")
    start_date: date = Field(..., description="First date the series may occur")
    expiry: date = Field(..., description="Last date the series may occur")
    start_time: time = Field(..., description="Local start time of day")
    end_time: time = Field(..., description="Local end time of day")

    published: bool = Field(default=True, description="Published flag copied to occurrences")

    # One-shot notification flags
    expiring_warning_sent: bool = False
    expired_warning_sent: bool = False

    model_config = ConfigDict(validate_assignment=True)

    @field_validator("title", "description")
    @classmethod
    def _validate_text(cls, value: str) -> str:
        return _require_text(value)

    @field_validator("day_array", mode="before")
    @classmethod
    def _split_days(cls, value: Union[str, list[str]]) -> list[str]:
        """Accept the comma-joined storage form as well as a list."""
        if isinstance(value, str):
            return [part for part in value.split(",") if part.strip()]
        return value

    @field_validator("day_array")
    @classmethod
    def _normalize_days(cls, value: list[str]) -> list[str]:
        normalized = []
        for name in value:
            weekday = normalize_weekday(name)
            if weekday is None:
                raise ValueError(f"unknown weekday name: {name!r}")
            normalized.append(weekday)
        return _dedupe(normalized)

    @field_validator("categories")
    @classmethod
    def _dedupe_categories(cls, value: list[int]) -> list[int]:
        return _dedupe(value)

    @model_validator(mode="after")
    def _validate_window(self) -> "Series":
        if self.end_time <= self.start_time:
            raise ValueError(
                f"end_time {self.end_time.isoformat()} must be after "
                f"start_time {self.start_time.isoformat()}"
            )
        return self

    @property
    def name(self) -> str:
        """Alias for the title."""
        return self.title

    @property
    def days(self) -> str:
        """Weekday set in its comma-joined storage form."""
        return ",".join(self.day_array)

    @property
    def pattern(self) -> RecurrencePattern:
        """Recurrence pattern implementing the rule."""
        return pattern_for_rule(self.rule)

    def occurrence_fields(self) -> dict[str, Any]:
        """Series-owned attributes to copy onto an occurrence.

        Returns:
            Shared attributes plus the back-reference to this series
        """
        fields: dict[str, Any] = {name: getattr(self, name) for name in SHARED_FIELDS}
        fields["categories"] = list(self.categories)
        fields["event_series_id"] = self.id
        return fields


class Occurrence(BaseModel):
    """One concrete, dated and timed event, optionally belonging to a series."""

    id: Optional[int] = Field(default=None, description="Occurrence ID, assigned by the store")
    title: str = Field(..., description="Event title")
    description: str = Field(..., description="Event description")
    location_id: int = Field(..., description="Location reference")
    user_id: int = Field(..., description="Owner reference")
    categories: list[int] = Field(default_factory=list, description="Category references")
    published: bool = Field(default=True, description="Published flag")

    # Absolute instants, always UTC
    start_time: datetime = Field(..., description="Start instant")
    end_time: datetime = Field(..., description="End instant")

    event_series_id: Optional[int] = Field(default=None, description="Originating series")
    cancelled: bool = Field(default=False, description="Cancellation status")

    @field_validator("title", "description")
    @classmethod
    def _validate_text(cls, value: str) -> str:
        return _require_text(value)

    @field_validator("start_time", "end_time")
    @classmethod
    def _validate_instant(cls, value: datetime) -> datetime:
        if value.tzinfo is None:
            raise ValueError("instants must be timezone-aware")
        return value.astimezone(UTC)

    @model_validator(mode="after")
    def _validate_window(self) -> "Occurrence":
        if self.start_time >= self.end_time:
            raise ValueError(
                f"start_time {self.start_time.isoformat()} must be before "
                f"end_time {self.end_time.isoformat()}"
            )
        return self

    @field_serializer("start_time", "end_time")
    def serialize_datetime(self, dt: datetime) -> str:
        """Serialize instants to ISO format."""
        return dt.isoformat()

    def validate_for_creation(self, now: datetime) -> None:
        """Check the rules that only apply to a new occurrence.

        Raises:
            OccurrenceValidationError: If the occurrence would start in the past
        """
        if self.start_time < now:
            raise OccurrenceValidationError(
                f"Occurrence starting {self.start_time.isoformat()} is in the past "
                f"(now {now.isoformat()})"
            )

    def in_progress(self, now: datetime) -> bool:
        """Check if the occurrence is currently happening."""
        return self.start_time <= now <= self.end_time

    def local_date(self, timezone_service: TimezoneService) -> date:
        """Local calendar date the occurrence starts on."""
        return timezone_service.local_date(self.start_time)
