from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from fortune_oracle.clients.proxy_client import ProxyClient
from fortune_oracle.constants import DEFAULT_VOICE, THINKING_BUDGET, TRANSCRIBE_PROMPT
from fortune_oracle.exceptions import ImagenBillingRequiredError, UpstreamError, VideoUnavailableError
from fortune_oracle.models import (
    GenerateContentResponse,
    GenerateImagesResponse,
    MediaInput,
    ModelNames,
    VideoOperation,
)
from fortune_oracle.utils.logging import Timer, log_event
from fortune_oracle.utils.retry import RetryPolicy, Sleep, retry_call

T = TypeVar("T")

IMAGEN_BILLING_MARKER = "only accessible to billed users"


def _inline_part(media: MediaInput) -> dict[str, Any]:
    return {"inlineData": {"data": media.base64, "mimeType": media.mime_type}}


class OracleService:
    def __init__(
        self,
        *,
        client: ProxyClient,
        logger: logging.Logger,
        policy: RetryPolicy | None = None,
        models: ModelNames | None = None,
        sleep: Sleep | None = None,
    ) -> None:
        self._client = client
        self._logger = logger
        self._policy = policy or RetryPolicy()
        self._models = models or ModelNames()
        self._sleep = sleep or asyncio.sleep

    async def _retried(self, name: str, operation: Callable[[], Awaitable[T]]) -> T:
        timer = Timer.start_now()
        result = await retry_call(
            operation,
            policy=self._policy,
            logger=self._logger,
            sleep=self._sleep,
            operation_name=name,
        )
        log_event(self._logger, operation=name, action="call", result="ok", duration_ms=timer.elapsed_ms())
        return result

    async def _generate_content(self, name: str, params: dict[str, Any]) -> GenerateContentResponse:
        data = await self._retried(name, lambda: self._client.call("generateContent", params))
        return GenerateContentResponse.model_validate(data)

    async def get_fortune(self, prompt: str) -> GenerateContentResponse:
        return await self._generate_content("get_fortune", {"model": self._models.flash, "contents": prompt})

    async def read_palm_or_face(self, image: MediaInput, prompt: str) -> GenerateContentResponse:
        return await self._generate_content(
            "read_palm_or_face",
            {
                "model": self._models.flash,
                "contents": {"parts": [_inline_part(image), {"text": prompt}]},
            },
        )

    async def get_daily_advice(self, prompt: str) -> GenerateContentResponse:
        return await self._generate_content("get_daily_advice", {"model": self._models.flash, "contents": prompt})

    async def generate_image(self, prompt: str, aspect_ratio: str) -> GenerateImagesResponse:
        params = {
            "model": self._models.imagen,
            "prompt": prompt,
            "config": {
                "numberOfImages": 1,
                "outputMimeType": "image/jpeg",
                "aspectRatio": aspect_ratio,
            },
        }

        async def _call() -> dict[str, Any]:
            try:
                return await self._client.call("generateImages", params)
            except UpstreamError as e:
                if IMAGEN_BILLING_MARKER in e.message:
                    raise ImagenBillingRequiredError() from e
                raise

        data = await self._retried("generate_image", _call)
        return GenerateImagesResponse.model_validate(data)

    async def generate_image_with_flash(self, prompt: str) -> GenerateContentResponse:
        return await self._generate_content(
            "generate_image_with_flash",
            {
                "model": self._models.flash_image,
                "contents": {"parts": [{"text": prompt}]},
                "config": {"responseModalities": ["IMAGE"]},
            },
        )

    async def edit_image(self, image: MediaInput, prompt: str) -> GenerateContentResponse:
        return await self._generate_content(
            "edit_image",
            {
                "model": self._models.flash_image,
                "contents": {"parts": [_inline_part(image), {"text": prompt}]},
                "config": {"responseModalities": ["IMAGE"]},
            },
        )

    async def text_to_speech(self, text: str, *, voice: str = DEFAULT_VOICE) -> GenerateContentResponse:
        return await self._generate_content(
            "text_to_speech",
            {
                "model": self._models.tts,
                "contents": [{"parts": [{"text": text}]}],
                "config": {
                    "responseModalities": ["AUDIO"],
                    "speechConfig": {"voiceConfig": {"prebuiltVoiceConfig": {"voiceName": voice}}},
                },
            },
        )

    async def analyze_video(self, video: MediaInput, prompt: str) -> GenerateContentResponse:
        return await self._generate_content(
            "analyze_video",
            {
                "model": self._models.pro,
                "contents": {"parts": [_inline_part(video), {"text": prompt}]},
            },
        )

    async def transcribe_audio(self, audio: MediaInput) -> GenerateContentResponse:
        return await self._generate_content(
            "transcribe_audio",
            {
                "model": self._models.flash,
                "contents": {"parts": [_inline_part(audio), {"text": TRANSCRIBE_PROMPT}]},
            },
        )

    async def send_message_to_chatbot(
        self,
        prompt: str,
        *,
        use_grounding: bool = False,
        use_thinking: bool = False,
        use_maps: bool = False,
        latitude: float | None = None,
        longitude: float | None = None,
    ) -> GenerateContentResponse:
        config: dict[str, Any] = {}
        if use_thinking:
            config["thinkingConfig"] = {"thinkingBudget": THINKING_BUDGET}

        tools: list[dict[str, Any]] = []
        if use_grounding:
            tools.append({"googleSearch": {}})
        if use_maps:
            tools.append({"googleMaps": {}})
        if tools:
            config["tools"] = tools

        # Zero coordinates count as "no location".
        if use_maps and latitude and longitude:
            config["toolConfig"] = {
                "retrievalConfig": {"latLng": {"latitude": latitude, "longitude": longitude}},
            }

        return await self._generate_content(
            "send_message_to_chatbot",
            {"model": self._models.pro, "contents": prompt, "config": config},
        )

    async def generate_video(
        self,
        prompt: str,
        aspect_ratio: str,
        image: MediaInput | None = None,
    ) -> VideoOperation:
        params: dict[str, Any] = {
            "model": self._models.veo,
            "prompt": prompt,
            "config": {
                "numberOfVideos": 1,
                "resolution": "720p",
                "aspectRatio": aspect_ratio,
            },
        }
        if image is not None:
            params["image"] = {"imageBytes": image.base64, "mimeType": image.mime_type}
        data = await self._retried("generate_video", lambda: self._client.call("generateVideos", params))
        return VideoOperation.model_validate(data)

    async def check_video_status(self, operation: VideoOperation) -> VideoOperation:
        params = {"operation": operation.model_dump(mode="json", by_alias=True, exclude_none=True)}
        data = await self._retried(
            "check_video_status",
            lambda: self._client.call("getVideosOperation", params),
        )
        return VideoOperation.model_validate(data)

    async def fetch_video(self, url: str) -> tuple[bytes, str]:
        return await self._retried("fetch_video", lambda: self._client.fetch_video(url))

    async def wait_for_video(self, operation: VideoOperation, *, poll_interval_s: float = 10.0) -> str:
        """
        Poll a video operation until it is done and return the download URI.
        """

        timer = Timer.start_now()
        polls = 0
        while not operation.done:
            await self._sleep(poll_interval_s)
            operation = await self.check_video_status(operation)
            polls += 1

        uri = operation.video_uri
        if uri is None:
            log_event(
                self._logger,
                operation="wait_for_video",
                action="poll",
                result="failed",
                duration_ms=timer.elapsed_ms(),
                level=logging.ERROR,
                message="Video operation finished without a download link",
                extra_fields={"polls": polls, "operation_name": operation.name},
            )
            raise VideoUnavailableError()
        log_event(
            self._logger,
            operation="wait_for_video",
            action="poll",
            result="ok",
            duration_ms=timer.elapsed_ms(),
            extra_fields={"polls": polls, "operation_name": operation.name},
        )
        return uri

    async def render_video(
        self,
        prompt: str,
        aspect_ratio: str,
        image: MediaInput | None = None,
        *,
        poll_interval_s: float = 10.0,
    ) -> tuple[bytes, str]:
        operation = await self.generate_video(prompt, aspect_ratio, image)
        uri = await self.wait_for_video(operation, poll_interval_s=poll_interval_s)
        return await self.fetch_video(uri)
