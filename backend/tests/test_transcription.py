import json

import httpx
import pytest

from config import TranscriptionConfig
from errors import TranscriptionError
from transcription import TranscriptionClient, transcript_from_response


def deepgram_body(transcript):
    return {"results": {"channels": [{"alternatives": [{"transcript": transcript, "confidence": 0.98}]}]}}


def make_client(handler):
    config = TranscriptionConfig(api_key="dg-test-key")
    return TranscriptionClient(config, transport=httpx.MockTransport(handler))


def test_transcribe_sends_audio_with_headers_and_query():
    """Test the request shape sent to the listen endpoint."""
    seen = {}

    def handler(request):
        seen["request"] = request
        return httpx.Response(200, json=deepgram_body("slept well"))

    client = make_client(handler)
    assert client.transcribe(b"\x1aE\xdf\xa3webm", "audio/webm") == "slept well"

    request = seen["request"]
    assert request.method == "POST"
    assert request.url.host == "api.deepgram.com"
    assert request.url.path == "/v1/listen"
    assert request.url.params["model"] == "nova-2"
    assert request.url.params["smart_format"] == "true"
    assert request.headers["Authorization"] == "Token dg-test-key"
    assert request.headers["Content-Type"] == "audio/webm"
    assert request.content == b"\x1aE\xdf\xa3webm"


def test_transcribe_trims_whitespace():
    client = make_client(lambda request: httpx.Response(200, json=deepgram_body("  hello world  ")))
    assert client.transcribe(b"audio", "audio/ogg") == "hello world"


def test_transcribe_without_alternatives_is_empty():
    """Test that a response with nothing recognised yields an empty transcript."""
    client = make_client(lambda request: httpx.Response(200, json={"results": {"channels": []}}))
    assert client.transcribe(b"silence", "audio/webm") == ""


def test_transcribe_blank_content_type():
    seen = {}

    def handler(request):
        seen["content_type"] = request.headers["Content-Type"]
        return httpx.Response(200, json=deepgram_body("hi"))

    make_client(handler).transcribe(b"audio", None)
    assert seen["content_type"] == "application/octet-stream"


def test_transcribe_failure_carries_body():
    client = make_client(lambda request: httpx.Response(401, text='{"err_msg":"Invalid credentials."}'))

    with pytest.raises(TranscriptionError) as exc_info:
        client.transcribe(b"audio", "audio/webm")

    assert exc_info.value.status_code == 502
    assert exc_info.value.body == '{"err_msg":"Invalid credentials."}'
    assert exc_info.value.message == 'Deepgram failed: {"err_msg":"Invalid credentials."}'


def test_transcribe_invalid_json():
    client = make_client(lambda request: httpx.Response(200, text="<html>gateway</html>"))
    with pytest.raises(TranscriptionError):
        client.transcribe(b"audio", "audio/webm")


@pytest.mark.parametrize(
    "payload",
    [
        None,
        {},
        {"results": {}},
        {"results": {"channels": [{"alternatives": []}]}},
        {"results": {"channels": [{"alternatives": [{"transcript": None}]}]}},
    ],
)
def test_transcript_from_response_missing_path(payload):
    assert transcript_from_response(payload) == ""


def test_transcript_from_response_uses_first_alternative():
    payload = json.loads(
        '{"results": {"channels": [{"alternatives": ['
        '{"transcript": " first "}, {"transcript": "second"}]}]}}'
    )
    assert transcript_from_response(payload) == "first"
