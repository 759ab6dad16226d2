"""Structured extraction of daily-log fields from a transcript.

The transcript is sent to the OpenAI Responses API together with a strict
JSON Schema, so the model can only answer with an object of the shape
stored in ``daily_logs.extracted``.
"""
import json
import logging
from dataclasses import dataclass
from typing import Any, Literal

import httpx

from config import ExtractionConfig
from errors import ExtractionError

logger = logging.getLogger(__name__)

SCHEMA_NAME = "daily_log"
DEFAULT_SCHEMA_VERSION = 1


def _string_list() -> dict:
    return {"type": "array", "items": {"type": "string"}}


EXTRACTION_SCHEMA: dict[str, Any] = {
    "type": "object",
    "additionalProperties": False,
    "properties": {
        "schema_version": {"type": "number"},
        "sleep_hours": {"type": "number"},
        "mood": {"type": "string"},
        "energy": {"type": "number"},
        "focus": {"type": "number"},
        "highlights": _string_list(),
        "challenges": _string_list(),
        "gratitude": _string_list(),
        "habits": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "yoga": {"type": "boolean"},
                "workout": {"type": "boolean"},
                "reading_minutes": {"type": "number"},
                "no_smoking": {"type": "boolean"},
            },
            "required": ["yoga", "workout", "reading_minutes", "no_smoking"],
        },
        "work": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "top_task_done": {"type": "string"},
                "time_blocks": {
                    "type": "array",
                    "items": {
                        "type": "object",
                        "additionalProperties": False,
                        "properties": {
                            "label": {"type": "string"},
                            "minutes": {"type": "number"},
                        },
                        "required": ["label", "minutes"],
                    },
                },
            },
            "required": ["top_task_done", "time_blocks"],
        },
        "health": {
            "type": "object",
            "additionalProperties": False,
            "properties": {
                "steps": {"type": "number"},
                "water_glasses": {"type": "number"},
                "calories": {"type": "number"},
            },
            "required": ["steps", "water_glasses", "calories"],
        },
        "notes": {"type": "string"},
        "todos_tomorrow": _string_list(),
    },
    "required": [
        "schema_version",
        "sleep_hours",
        "mood",
        "energy",
        "focus",
        "highlights",
        "challenges",
        "gratitude",
        "habits",
        "work",
        "health",
        "notes",
        "todos_tomorrow",
    ],
}

SYSTEM_PROMPT = (
    "You extract structured daily journal data. "
    "Return ONLY JSON that conforms to the provided JSON schema."
)

EXTRACTION_RULES = (
    "Rules:\n"
    "- Infer numbers from phrases (e.g., 'about seven and a half hours' → 7.5)\n"
    "- Omit fields not mentioned\n"
    "- mood: single lowercase word when possible\n"
    "- notes: 1–3 short sentences"
)


def build_messages(transcript: str) -> list[dict[str, str]]:
    user_prompt = (
        f"Schema: {json.dumps(EXTRACTION_SCHEMA)}\n\n"
        f"{EXTRACTION_RULES}\n\n"
        f"Transcript:\n{transcript}"
    )
    return [
        {"role": "system", "content": SYSTEM_PROMPT},
        {"role": "user", "content": user_prompt},
    ]


@dataclass(frozen=True)
class GeneratedText:
    """Where the generated JSON text was found in a Responses API payload.

    ``output_array``: the ``output_text`` item of ``output[0].content``.
    ``output_text``: the top-level ``output_text`` convenience string.
    ``missing``: neither shape was present.
    """

    source: Literal["output_array", "output_text", "missing"]
    text: str = ""


def locate_output_text(payload: Any) -> GeneratedText:
    if not isinstance(payload, dict):
        return GeneratedText("missing")

    output = payload.get("output")
    if isinstance(output, list) and output and isinstance(output[0], dict):
        content = output[0].get("content")
        if isinstance(content, list):
            for item in content:
                if isinstance(item, dict) and item.get("type") == "output_text":
                    text = item.get("text")
                    if isinstance(text, str):
                        return GeneratedText("output_array", text)
                    break

    if isinstance(payload.get("output_text"), str):
        return GeneratedText("output_text", payload["output_text"])

    return GeneratedText("missing")


def _reject_constant(name: str):
    raise ValueError(f"{name} is not a finite number")


def parse_generated(generated: GeneratedText) -> dict[str, Any]:
    """Parse the generated JSON text into an extracted payload.

    Empty output yields an empty payload. Anything that is not a JSON object
    is rejected outright.
    """
    if not generated.text:
        parsed: Any = {}
    else:
        try:
            parsed = json.loads(generated.text, parse_constant=_reject_constant)
        except ValueError as e:
            raise ExtractionError(f"Extraction returned malformed JSON: {e}", body=generated.text) from e

    if not isinstance(parsed, dict):
        raise ExtractionError("Extraction returned JSON that is not an object", body=generated.text)

    if not parsed.get("schema_version"):
        parsed["schema_version"] = DEFAULT_SCHEMA_VERSION
    return parsed


class ExtractionClient:
    def __init__(self, config: ExtractionConfig, transport: httpx.BaseTransport | None = None):
        self.config = config
        self.transport = transport

    def request_body(self, transcript: str) -> dict[str, Any]:
        return {
            "model": self.config.model,
            "input": build_messages(transcript),
            "text": {
                "format": {
                    "type": "json_schema",
                    "name": SCHEMA_NAME,
                    "schema": EXTRACTION_SCHEMA,
                    "strict": True,
                }
            },
        }

    def extract(self, transcript: str) -> dict[str, Any]:
        """Extract the structured payload for one transcript.

        Raises:
            ExtractionError: non-success status from the service, or
                generated text that is not a JSON object.
        """
        logger.info(f"Extracting fields from {len(transcript)} characters with {self.config.model}")

        with httpx.Client(
            base_url=self.config.base_url,
            timeout=self.config.timeout,
            transport=self.transport,
        ) as client:
            response = client.post(
                "/v1/responses",
                headers={
                    "Authorization": f"Bearer {self.config.api_key}",
                    "Content-Type": "application/json",
                },
                json=self.request_body(transcript),
            )

        if not response.is_success:
            logger.error(f"Extraction API error: {response.status_code} - {response.text[:200]}")
            raise ExtractionError(f"OpenAI failed: {response.text}", body=response.text)

        try:
            payload = response.json()
        except ValueError as e:
            raise ExtractionError(f"OpenAI returned invalid JSON: {e}", body=response.text) from e

        generated = locate_output_text(payload)
        logger.info(f"Generated text located via {generated.source}")
        extracted = parse_generated(generated)
        logger.info(f"Extraction complete: {len(extracted)} top-level fields")
        return extracted
