"""Speech-to-text client for the Deepgram pre-recorded audio API."""
import logging
from typing import Any

import httpx

from config import TranscriptionConfig
from errors import TranscriptionError

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def transcript_from_response(payload: Any) -> str:
    """Return the best alternative of the first channel, trimmed.

    A response without that path means nothing was recognised, which is
    a valid outcome rather than an error.
    """
    try:
        text = payload["results"]["channels"][0]["alternatives"][0]["transcript"]
    except (KeyError, IndexError, TypeError):
        return ""
    if not isinstance(text, str):
        return ""
    return text.strip()


class TranscriptionClient:
    def __init__(self, config: TranscriptionConfig, transport: httpx.BaseTransport | None = None):
        self.config = config
        self.transport = transport

    def transcribe(self, audio: bytes, content_type: str | None) -> str:
        """Send the audio to the listen endpoint and return the transcript.

        Args:
            audio: Encoded audio bytes as recorded by the browser.
            content_type: Declared MIME type of the audio, blank if unknown.

        Raises:
            TranscriptionError: the service answered with a non-success
                status; the upstream body is carried verbatim.
        """
        content_type = content_type or DEFAULT_CONTENT_TYPE
        logger.info(f"Transcribing {len(audio)} bytes of {content_type} with {self.config.model}")

        with httpx.Client(
            base_url=self.config.base_url,
            timeout=self.config.timeout,
            transport=self.transport,
        ) as client:
            response = client.post(
                "/v1/listen",
                params={"model": self.config.model, "smart_format": "true"},
                headers={
                    "Authorization": f"Token {self.config.api_key}",
                    "Content-Type": content_type,
                },
                content=audio,
            )

        if not response.is_success:
            logger.error(f"Transcription API error: {response.status_code} - {response.text[:200]}")
            raise TranscriptionError(f"Deepgram failed: {response.text}", body=response.text)

        try:
            payload = response.json()
        except ValueError as e:
            raise TranscriptionError(f"Deepgram returned invalid JSON: {e}", body=response.text) from e

        transcript = transcript_from_response(payload)
        logger.info(f"Transcription complete: {len(transcript)} characters")
        return transcript
