from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

RETRY_INFO_TYPE = "type.googleapis.com/google.rpc.RetryInfo"


class UpstreamErrorBody(BaseModel):
    model_config = ConfigDict(extra="allow")

    code: int | None = None
    status: str | None = None
    message: str = ""
    details: list[dict[str, Any]] = Field(default_factory=list)


class UpstreamErrorPayload(BaseModel):
    """Google RPC style error envelope: {"error": {...}}."""

    error: UpstreamErrorBody

    @property
    def status(self) -> str | None:
        return self.error.status

    def retry_delay_seconds(self) -> int | None:
        for detail in self.error.details:
            if detail.get("@type") != RETRY_INFO_TYPE:
                continue
            raw = detail.get("retryDelay")
            if not isinstance(raw, str):
                return None
            # Format is "28s", sometimes fractional ("28.4s").
            digits = raw.strip().rstrip("s").split(".", 1)[0]
            try:
                return int(digits)
            except ValueError:
                return None
        return None


class InlineData(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    data: str
    mime_type: str | None = Field(default=None, alias="mimeType")


class Part(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    text: str | None = None
    inline_data: InlineData | None = Field(default=None, alias="inlineData")


class Content(BaseModel):
    model_config = ConfigDict(extra="allow")

    role: str | None = None
    parts: list[Part] = Field(default_factory=list)


class GroundingMetadata(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    grounding_chunks: list[dict[str, Any]] = Field(default_factory=list, alias="groundingChunks")


class Candidate(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    content: Content | None = None
    finish_reason: str | None = Field(default=None, alias="finishReason")
    grounding_metadata: GroundingMetadata | None = Field(default=None, alias="groundingMetadata")


class GenerateContentResponse(BaseModel):
    model_config = ConfigDict(extra="allow")

    candidates: list[Candidate] = Field(default_factory=list)

    def _first_parts(self) -> list[Part]:
        if not self.candidates or self.candidates[0].content is None:
            return []
        return self.candidates[0].content.parts

    @property
    def text(self) -> str:
        return "".join(p.text for p in self._first_parts() if p.text)

    def first_inline_data(self) -> InlineData | None:
        for p in self._first_parts():
            if p.inline_data is not None:
                return p.inline_data
        return None

    @property
    def grounding_chunks(self) -> list[dict[str, Any]]:
        if not self.candidates or self.candidates[0].grounding_metadata is None:
            return []
        return self.candidates[0].grounding_metadata.grounding_chunks

    @property
    def blocked_for_safety(self) -> bool:
        return bool(self.candidates) and self.candidates[0].finish_reason == "SAFETY"


class GeneratedImageBytes(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    image_bytes: str | None = Field(default=None, alias="imageBytes")
    mime_type: str | None = Field(default=None, alias="mimeType")


class GeneratedImage(BaseModel):
    model_config = ConfigDict(extra="allow")

    image: GeneratedImageBytes | None = None


class GenerateImagesResponse(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    generated_images: list[GeneratedImage] = Field(default_factory=list, alias="generatedImages")

    def first_image(self) -> GeneratedImageBytes | None:
        for img in self.generated_images:
            if img.image is not None and img.image.image_bytes:
                return img.image
        return None


class VideoFile(BaseModel):
    model_config = ConfigDict(extra="allow")

    uri: str | None = None


class GeneratedVideo(BaseModel):
    model_config = ConfigDict(extra="allow")

    video: VideoFile | None = None


class VideoOperationResult(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    generated_videos: list[GeneratedVideo] = Field(default_factory=list, alias="generatedVideos")


class VideoOperation(BaseModel):
    """Long-running video generation operation, passed back verbatim when polling."""

    model_config = ConfigDict(extra="allow")

    name: str | None = None
    done: bool = False
    response: VideoOperationResult | None = None
    error: dict[str, Any] | None = None

    @property
    def video_uri(self) -> str | None:
        if self.response is None:
            return None
        for v in self.response.generated_videos:
            if v.video is not None and v.video.uri:
                return v.video.uri
        return None


class MediaInput(BaseModel):
    """Base64 encoded media sent inline with a request."""

    base64: str
    mime_type: str


class ModelNames(BaseModel):
    model_config = ConfigDict(extra="forbid")

    flash: str = "gemini-2.5-flash"
    pro: str = "gemini-2.5-pro"
    imagen: str = "imagen-4.0-generate-001"
    flash_image: str = "gemini-2.5-flash-image"
    veo: str = "veo-3.1-fast-generate-preview"
    tts: str = "gemini-2.5-flash-preview-tts"
