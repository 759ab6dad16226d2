"""Record → transcribe → extract → persist, as one sequential chain."""
import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Any, Protocol
from zoneinfo import ZoneInfo

from sqlmodel import Session

import gateway
from errors import ValidationError
from models import DailyLog

logger = logging.getLogger(__name__)


class Transcriber(Protocol):
    def transcribe(self, audio: bytes, content_type: str | None) -> str: ...


class Extractor(Protocol):
    def extract(self, transcript: str) -> dict[str, Any]: ...


@dataclass
class Submission:
    transcript: str
    extracted: dict[str, Any]
    row: DailyLog


def today_in(timezone: str) -> date:
    """Calendar date right now in the given IANA zone."""
    return datetime.now(ZoneInfo(timezone)).date()


def parse_log_date(value: str | None, timezone: str) -> date:
    if not value:
        return today_in(timezone)
    try:
        return date.fromisoformat(value)
    except ValueError as e:
        raise ValidationError("Invalid date format. Use YYYY-MM-DD") from e


def process_submission(
    session: Session,
    owner: str,
    log_date: date,
    audio: bytes,
    content_type: str | None,
    transcriber: Transcriber,
    extractor: Extractor,
) -> Submission:
    """Run one submission end to end.

    Upstream failures propagate before the store is touched, so a failed
    transcription or extraction never writes or overwrites a row.
    """
    logger.info(f"Processing submission for user {owner} on {log_date} ({len(audio)} bytes)")

    transcript = transcriber.transcribe(audio, content_type)
    extracted = extractor.extract(transcript)
    row = gateway.upsert(session, owner, log_date, transcript, extracted)

    logger.info(f"Submission saved as log {row.id}")
    return Submission(transcript=transcript, extracted=extracted, row=row)
