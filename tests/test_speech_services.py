import asyncio
import io
import subprocess
import wave

import httpx
import pytest

import stt
import tts
from conftest import gemini_transport, request_json
from jsonrpc import INVALID_PARAMS, JsonRpcClient, JsonRpcError, failure, success
from llm_client import FALLBACK_REPLY, LLMClient, LLMError


def recording_transport(response):
    requests = []

    def handler(request):
        requests.append(request)
        return response

    transport = httpx.MockTransport(handler)
    transport.requests = requests
    return transport


def test_elevenlabs_stt_sends_multipart_form():
    transport = recording_transport(httpx.Response(200, json={"text": "  hello world "}))
    client = stt.ElevenLabsSTT(api_key="key", transport=transport)
    text = asyncio.run(client.transcribe(b"RIFF", "recording.wav", "audio/wav"))

    assert text == "hello world"
    request = transport.requests[0]
    assert request.url.path == "/v1/speech-to-text"
    assert request.headers["xi-api-key"] == "key"
    body = request.content
    assert b'name="file"; filename="recording.wav"' in body
    assert b"scribe_v1" in body
    assert b'name="tag_audio_events"' in body


def test_elevenlabs_stt_error_status():
    transport = recording_transport(httpx.Response(401, text="invalid api key"))
    client = stt.ElevenLabsSTT(api_key="bad", transport=transport)
    with pytest.raises(stt.TranscriptionError):
        asyncio.run(client.transcribe(b"RIFF"))


def test_create_stt_rejects_unknown_provider():
    assert isinstance(stt.create_stt("whisper"), stt.FasterWhisperSTT)
    with pytest.raises(ValueError):
        stt.create_stt("carrier-pigeon")


def test_elevenlabs_tts_request():
    transport = recording_transport(httpx.Response(200, content=b"ID3audio"))
    client = tts.ElevenLabsTTS(api_key="key", transport=transport)
    audio = asyncio.run(client.synthesize("Hello"))

    assert audio == b"ID3audio"
    request = transport.requests[0]
    assert request.url.path == "/v1/text-to-speech/21m00Tcm4TlvDq8ikWAM"
    assert request.url.params["output_format"] == "mp3_44100_128"
    assert request_json(request) == {"text": "Hello", "model_id": "eleven_multilingual_v2"}


def test_elevenlabs_tts_transport_failure():
    def handler(request):
        raise httpx.ConnectError("unreachable", request=request)

    client = tts.ElevenLabsTTS(api_key="key", transport=httpx.MockTransport(handler))
    with pytest.raises(tts.SynthesisError):
        asyncio.run(client.synthesize("Hello"))


def test_piper_wraps_raw_pcm_in_wav(monkeypatch):
    calls = []

    def fake_run(cmd, input, capture_output, check):
        calls.append((cmd, input))
        return subprocess.CompletedProcess(cmd, 0, stdout=b"\x00\x01" * 100, stderr=b"")

    monkeypatch.setattr(tts.subprocess, "run", fake_run)
    engine = tts.PiperTTS("piper", "voice.onnx", speed=2.0)
    data = asyncio.run(engine.synthesize("Hi"))

    with wave.open(io.BytesIO(data), "rb") as wav:
        assert wav.getframerate() == 22050
        assert wav.getnframes() == 100
    cmd, text = calls[0]
    assert text == b"Hi"
    assert cmd[cmd.index("--length_scale") + 1] == "0.5"


def test_piper_missing_binary(monkeypatch):
    def fake_run(*args, **kwargs):
        raise FileNotFoundError("piper")

    monkeypatch.setattr(tts.subprocess, "run", fake_run)
    with pytest.raises(tts.SynthesisError):
        asyncio.run(tts.PiperTTS("piper", "voice.onnx").synthesize("Hi"))


def test_llm_sends_key_and_parses_reply(monkeypatch):
    monkeypatch.setenv("GEMINI_API_KEY", "secret")
    transport = gemini_transport(reply="Hello!", tokens=7)
    completion = asyncio.run(LLMClient(transport=transport).generate("gemini-2.0-flash-exp", "Be nice.", "hi"))

    assert completion.text == "Hello!"
    assert completion.tokens_used == 7
    request = transport.requests[0]
    assert request.headers["x-goog-api-key"] == "secret"
    assert request.url.path.endswith("/models/gemini-2.0-flash-exp:generateContent")


def test_llm_empty_candidate_uses_fallback():
    transport = recording_transport(httpx.Response(200, json={"candidates": []}))
    completion = asyncio.run(LLMClient(transport=transport).generate("m", "p", "hi"))
    assert completion.text == FALLBACK_REPLY
    assert completion.tokens_used == 0


def test_llm_error_keeps_status_and_body():
    transport = gemini_transport(status=500)
    with pytest.raises(LLMError) as excinfo:
        asyncio.run(LLMClient(transport=transport).generate("m", "p", "hi"))
    assert excinfo.value.status == 500
    assert excinfo.value.body == "quota exceeded"


def test_jsonrpc_client_raises_remote_error():
    transport = recording_transport(
        httpx.Response(200, json=failure(1, INVALID_PARAMS, "Agent not found: x"))
    )
    client = JsonRpcClient("http://agent-server/", transport=transport)
    with pytest.raises(JsonRpcError) as excinfo:
        asyncio.run(client.call("process_text", {"agent_id": "x", "user_text": "hi"}))

    assert excinfo.value.code == INVALID_PARAMS
    assert excinfo.value.is_client_error
    sent = request_json(transport.requests[0])
    assert sent["jsonrpc"] == "2.0"
    assert sent["method"] == "process_text"


def test_jsonrpc_client_returns_result():
    transport = recording_transport(httpx.Response(200, json=success(1, {"agents": []})))
    client = JsonRpcClient("http://agent-server/", transport=transport)
    assert asyncio.run(client.call("list_agents")) == {"agents": []}
