"""View-model helpers for the HTML pages.

Stored payloads are rendered as they are: any field that is missing, of the
wrong type or not a finite number shows the placeholder instead of raising.
"""
import json
import math
from datetime import date, timedelta
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from errors import ValidationError
from models import DailyLog
from schemas import ExtractedPayload

PLACEHOLDER = "—"
CHECK = "✔"

LIST_FIELDS = ("highlights", "challenges", "gratitude", "todos_tomorrow")
TREND_FIELDS = {
    "sleep": "sleep_hours",
    "energy": "energy",
    "focus": "focus",
}

# Browser-side recording settings, rendered into the record page
RECORDING_MIME_CANDIDATES = [
    "audio/webm;codecs=opus",
    "audio/webm",
    "audio/ogg;codecs=opus",
    "audio/ogg",
]
RECORDING_CHUNK_MS = 1000


def is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def fmt_number(value: Any) -> str:
    if not is_number(value):
        return PLACEHOLDER
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def fmt_text(value: Any) -> str:
    if isinstance(value, str) and value.strip():
        return value
    return PLACEHOLDER


def fmt_check(value: Any) -> str:
    return CHECK if value is True else PLACEHOLDER


def string_list(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [item for item in value if isinstance(item, str)]


def _section(extracted: dict, key: str) -> dict:
    value = extracted.get(key)
    return value if isinstance(value, dict) else {}


def log_card(log: DailyLog) -> dict[str, Any]:
    """Flatten one log into display strings for the logs page."""
    extracted = log.extracted if isinstance(log.extracted, dict) else {}
    habits = _section(extracted, "habits")
    work = _section(extracted, "work")
    health = _section(extracted, "health")

    time_blocks = []
    for block in work.get("time_blocks") or []:
        if isinstance(block, dict):
            time_blocks.append(
                {"label": fmt_text(block.get("label")), "minutes": fmt_number(block.get("minutes"))}
            )

    card = {
        "id": log.id,
        "log_date": log.log_date.isoformat(),
        "transcript": log.transcript,
        "mood": fmt_text(extracted.get("mood")),
        "energy": fmt_number(extracted.get("energy")),
        "focus": fmt_number(extracted.get("focus")),
        "sleep": fmt_number(extracted.get("sleep_hours")),
        "top_task": fmt_text(work.get("top_task_done")),
        "time_blocks": time_blocks,
        "habits": {
            "yoga": fmt_check(habits.get("yoga")),
            "workout": fmt_check(habits.get("workout")),
            "no_smoking": fmt_check(habits.get("no_smoking")),
            "reading_minutes": fmt_number(habits.get("reading_minutes")),
        },
        "health": {
            "steps": fmt_number(health.get("steps")),
            "water": fmt_number(health.get("water_glasses")),
            "calories": fmt_number(health.get("calories")),
        },
        "notes": fmt_text(extracted.get("notes")),
        "raw_json": json_text(log.extracted),
    }
    for field in LIST_FIELDS:
        card[field] = string_list(extracted.get(field))
    return card


def seed_form(extracted: dict[str, Any] | None) -> dict[str, Any]:
    """Copy of the payload with empty containers where lists or objects are missing."""
    form = dict(extracted or {})
    for field in LIST_FIELDS:
        form[field] = string_list(form.get(field))
    form["habits"] = dict(_section(form, "habits"))
    form["health"] = dict(_section(form, "health"))
    work = dict(_section(form, "work"))
    work["time_blocks"] = [b for b in work.get("time_blocks") or [] if isinstance(b, dict)]
    form["work"] = work
    return form


def _input(value: Any) -> str:
    if value is None or isinstance(value, (dict, list)):
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def form_fields(form: dict[str, Any]) -> dict[str, Any]:
    """Flatten a seeded form into the input values of the edit page."""
    habits, work, health = form["habits"], form["work"], form["health"]
    fields = {
        "schema_version": _input(form.get("schema_version")) or "1",
        "sleep_hours": _input(form.get("sleep_hours")),
        "mood": _input(form.get("mood")),
        "energy": _input(form.get("energy")),
        "focus": _input(form.get("focus")),
        "notes": _input(form.get("notes")),
        "habits_yoga": habits.get("yoga") is True,
        "habits_workout": habits.get("workout") is True,
        "habits_no_smoking": habits.get("no_smoking") is True,
        "habits_reading_minutes": _input(habits.get("reading_minutes")),
        "work_top_task_done": _input(work.get("top_task_done")),
        "work_time_blocks": "\n".join(
            f"{_input(b.get('label'))} | {_input(b.get('minutes'))}" for b in work["time_blocks"]
        ),
        "health_steps": _input(health.get("steps")),
        "health_water_glasses": _input(health.get("water_glasses")),
        "health_calories": _input(health.get("calories")),
    }
    for field in LIST_FIELDS:
        fields[field] = "\n".join(form[field])
    return fields


def json_text(value: Any) -> str:
    return json.dumps(value if value is not None else {}, indent=2, ensure_ascii=False)


def _lines(value: str | None) -> list[str]:
    return [line.strip() for line in (value or "").splitlines() if line.strip()]


def _optional(value: str | None) -> str | None:
    value = (value or "").strip()
    return value or None


def _time_blocks(value: str | None) -> list[dict[str, Any]]:
    blocks = []
    for line in _lines(value):
        label, sep, minutes = line.rpartition("|")
        if not sep or not label.strip():
            raise ValidationError(f"Time block '{line}' must look like 'label | minutes'")
        blocks.append({"label": label.strip(), "minutes": minutes.strip()})
    return blocks


def _filled(section: dict[str, Any]) -> bool:
    return any(value not in (None, False, []) for value in section.values())


def form_to_payload(form: dict[str, Any]) -> dict[str, Any]:
    """Build the replacement payload from the edit form's fields.

    Sections and lists the user left blank are omitted, the same as a field
    the transcript never mentioned. The JSON variant of the form replaces
    the payload with the parsed textarea as-is.
    """
    if form.get("mode") == "json":
        return parse_raw_json(form.get("raw_json") or "")

    candidate = {
        "schema_version": _optional(form.get("schema_version")) or 1,
        "sleep_hours": _optional(form.get("sleep_hours")),
        "mood": _optional(form.get("mood")),
        "energy": _optional(form.get("energy")),
        "focus": _optional(form.get("focus")),
        "notes": _optional(form.get("notes")),
    }
    habits = {
        "yoga": bool(form.get("habits_yoga")),
        "workout": bool(form.get("habits_workout")),
        "no_smoking": bool(form.get("habits_no_smoking")),
        "reading_minutes": _optional(form.get("habits_reading_minutes")),
    }
    work = {
        "top_task_done": _optional(form.get("work_top_task_done")),
        "time_blocks": _time_blocks(form.get("work_time_blocks")) or None,
    }
    health = {
        "steps": _optional(form.get("health_steps")),
        "water_glasses": _optional(form.get("health_water_glasses")),
        "calories": _optional(form.get("health_calories")),
    }
    for name, section in (("habits", habits), ("work", work), ("health", health)):
        if _filled(section):
            candidate[name] = section
    for field in LIST_FIELDS:
        lines = _lines(form.get(field))
        if lines:
            candidate[field] = lines

    try:
        return ExtractedPayload.model_validate(candidate).to_storage()
    except PydanticValidationError as e:
        problems = ", ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
        )
        raise ValidationError(f"Invalid value: {problems}") from e


def _reject_constant(name: str):
    raise ValueError(f"{name} is not a finite number")


def parse_raw_json(value: str) -> dict[str, Any]:
    try:
        parsed = json.loads(value, parse_constant=_reject_constant)
    except json.JSONDecodeError as e:
        raise ValidationError(f"Extracted JSON is not valid: {e.msg}") from e
    except ValueError as e:
        raise ValidationError(f"Extracted JSON is not valid: {e}") from e
    if not isinstance(parsed, dict):
        raise ValidationError("Extracted JSON must be an object")
    return parsed


def trend_series(logs: list[DailyLog]) -> dict[str, list[tuple[str, Any]]]:
    """(log_date, value) points per metric, skipping non-numeric values."""
    series = {name: [] for name in TREND_FIELDS}
    for log in logs:
        extracted = log.extracted if isinstance(log.extracted, dict) else {}
        for name, field in TREND_FIELDS.items():
            value = extracted.get(field)
            if is_number(value):
                series[name].append((log.log_date.isoformat(), value))
    return series


def default_range(today: date, days: int) -> tuple[date, date]:
    return today - timedelta(days=days), today
