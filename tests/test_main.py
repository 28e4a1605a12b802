from __future__ import annotations

import base64
import json
from pathlib import Path
from typing import Any

import httpx
import pytest

from fortune_oracle import main as cli
from fortune_oracle.clients.proxy_client import ProxyClient
from fortune_oracle.exceptions import ConfigError, ExitCode


def _install_proxy(monkeypatch: pytest.MonkeyPatch, handler: Any) -> None:
    def _factory(**kwargs: Any) -> ProxyClient:
        return ProxyClient(**kwargs, transport=httpx.MockTransport(handler))

    monkeypatch.setattr(cli, "ProxyClient", _factory)


@pytest.fixture(autouse=True)
def _env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("ORACLE_PROXY_URL", "https://oracle.example.test")
    monkeypatch.setenv("RETRY_INITIAL_DELAY_MS", "0")
    monkeypatch.delenv("RETRY_MAX_ATTEMPTS", raising=False)
    monkeypatch.delenv("LOG_LEVEL", raising=False)


def test_missing_config_exits_with_config_code(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("ORACLE_PROXY_URL")

    assert cli.main(["advice"]) == int(ExitCode.CONFIG)


def test_fortune_prints_text(monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert body["operation"] == "generateContent"
        assert "born on 1990-04-02" in body["params"]["contents"]
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "Bright days ahead."}]}}]})

    _install_proxy(monkeypatch, handler)

    assert cli.main(["fortune", "--birth-date", "1990-04-02", "--name", "Lena"]) == 0
    assert capsys.readouterr().out.strip() == "Bright days ahead."


def test_quota_exhaustion_maps_to_exit_code(monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[int] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(1)
        return httpx.Response(429, json={"error": {"code": 429, "status": "RESOURCE_EXHAUSTED", "message": "quota"}})

    _install_proxy(monkeypatch, handler)

    assert cli.main(["advice"]) == int(ExitCode.QUOTA_EXCEEDED)
    assert len(calls) == 3


def test_unreachable_proxy_maps_to_overloaded(monkeypatch: pytest.MonkeyPatch) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    _install_proxy(monkeypatch, handler)

    assert cli.main(["advice"]) == int(ExitCode.MODEL_OVERLOADED)


def test_edit_image_writes_decoded_output(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    source = tmp_path / "in.png"
    source.write_bytes(b"png-in")
    out = tmp_path / "out.png"

    def handler(request: httpx.Request) -> httpx.Response:
        parts = json.loads(request.content)["params"]["contents"]["parts"]
        assert parts[0]["inlineData"] == {"data": base64.b64encode(b"png-in").decode(), "mimeType": "image/png"}
        data = base64.b64encode(b"png-out").decode()
        return httpx.Response(
            200,
            json={"candidates": [{"content": {"parts": [{"inlineData": {"data": data, "mimeType": "image/png"}}]}}]},
        )

    _install_proxy(monkeypatch, handler)

    assert cli.main(["edit-image", "make it glow", "--image", str(source), "--out", str(out)]) == 0
    assert out.read_bytes() == b"png-out"


def test_read_media_missing_file(tmp_path: Path) -> None:
    with pytest.raises(ConfigError):
        cli.read_media(str(tmp_path / "nope.jpg"))


def test_read_media_unknown_type(tmp_path: Path) -> None:
    path = tmp_path / "blob.unknownext"
    path.write_bytes(b"x")

    with pytest.raises(ConfigError):
        cli.read_media(str(path))


def test_invalid_log_level_exits_with_config_code(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("LOG_LEVEL", "VERBOSE")

    assert cli.main(["advice"]) == int(ExitCode.CONFIG)


def test_fortune_summary_portrait_and_animation(
    monkeypatch: pytest.MonkeyPatch,
    tmp_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    portrait_b64 = base64.b64encode(b"angel-jpeg").decode()
    video_uri = "https://video.example/files/1:download?alt=media"
    requests: list[dict[str, Any]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        requests.append(body)
        operation, params = body["operation"], body["params"]
        if operation == "generateContent" and params["model"] == "gemini-2.5-flash-image":
            inline = {"inlineData": {"data": portrait_b64, "mimeType": "image/jpeg"}}
            return httpx.Response(200, json={"candidates": [{"content": {"parts": [inline]}}]})
        if operation == "generateContent" and params["contents"].startswith("Summarize"):
            return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "Short and sweet."}]}}]})
        if operation == "generateContent":
            text = "Luck is near. Your guardian angel is Seraphiel. Rest well."
            return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": text}]}}]})
        if operation == "generateVideos":
            done = {"name": "operations/7", "done": True, "response": {"generatedVideos": [{"video": {"uri": video_uri}}]}}
            return httpx.Response(200, json=done)
        if operation == "fetchVideo":
            assert params == {"url": video_uri}
            return httpx.Response(200, content=b"mp4", headers={"Content-Type": "video/mp4"})
        raise AssertionError(f"unexpected operation {operation}")

    _install_proxy(monkeypatch, handler)
    portrait = tmp_path / "angel.jpg"
    clip = tmp_path / "angel.mp4"

    code = cli.main(
        [
            "fortune",
            "--birth-date",
            "1990-04-02",
            "--summary",
            "--angel-image",
            str(portrait),
            "--animate",
            str(clip),
        ]
    )

    assert code == 0
    out = capsys.readouterr().out
    assert "Short and sweet." in out
    assert portrait.read_bytes() == b"angel-jpeg"
    assert clip.read_bytes() == b"mp4"

    image_request = next(r for r in requests if r["params"].get("model") == "gemini-2.5-flash-image")
    assert "Seraphiel" in image_request["params"]["contents"]["parts"][0]["text"]
    video_request = next(r for r in requests if r["operation"] == "generateVideos")
    assert video_request["params"]["config"]["aspectRatio"] == "9:16"
    assert video_request["params"]["image"] == {"imageBytes": portrait_b64, "mimeType": "image/jpeg"}


def test_fortune_without_follow_ups_makes_one_call(
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    calls: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(json.loads(request.content)["operation"])
        return httpx.Response(200, json={"candidates": [{"content": {"parts": [{"text": "Calm seas."}]}}]})

    _install_proxy(monkeypatch, handler)

    assert cli.main(["fortune", "--birth-date", "2001-01-01"]) == 0
    assert calls == ["generateContent"]
    assert capsys.readouterr().out.strip() == "Calm seas."
