from datetime import date, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field
from sqlmodel import SQLModel

Number = int | float


class Habits(BaseModel):
    model_config = ConfigDict(extra="allow", allow_inf_nan=False)

    yoga: bool | None = None
    workout: bool | None = None
    reading_minutes: Number | None = None
    no_smoking: bool | None = None


class TimeBlock(BaseModel):
    model_config = ConfigDict(allow_inf_nan=False)

    label: str
    minutes: Number


class Work(BaseModel):
    model_config = ConfigDict(extra="allow", allow_inf_nan=False)

    top_task_done: str | None = None
    time_blocks: list[TimeBlock] | None = None


class Health(BaseModel):
    model_config = ConfigDict(extra="allow", allow_inf_nan=False)

    steps: Number | None = None
    water_glasses: Number | None = None
    calories: Number | None = None


class ExtractedPayload(BaseModel):
    """Structured fields pulled out of one day's transcript.

    Every field is optional; unknown keys are kept so hand edits survive.
    """

    model_config = ConfigDict(extra="allow", allow_inf_nan=False)

    schema_version: int = 1
    sleep_hours: Number | None = None
    mood: str | None = None
    energy: Number | None = None
    focus: Number | None = None
    highlights: list[str] | None = None
    challenges: list[str] | None = None
    gratitude: list[str] | None = None
    habits: Habits | None = None
    work: Work | None = None
    health: Health | None = None
    notes: str | None = None
    todos_tomorrow: list[str] | None = None

    def to_storage(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)


class DailyLogResponse(SQLModel):
    id: str
    user_id: str
    log_date: date
    transcript: str | None = None
    extracted: dict[str, Any] | None = None
    created_at: datetime


class LogsResponse(BaseModel):
    data: list[DailyLogResponse]


class UpdateLogRequest(BaseModel):
    extracted: dict[str, Any] = Field(default_factory=dict)


class UpdateLogResponse(BaseModel):
    ok: bool
    row: DailyLogResponse


class ProcessResponse(BaseModel):
    transcript: str
    extracted: dict[str, Any]
    row: DailyLogResponse
