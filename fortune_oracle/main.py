from __future__ import annotations

import argparse
import asyncio
import base64
import logging
import mimetypes
import sys
from datetime import date
from pathlib import Path

from fortune_oracle import prompts
from fortune_oracle.clients.proxy_client import ProxyClient
from fortune_oracle.config import Settings, load_model_names, load_settings_from_env
from fortune_oracle.constants import ASPECT_RATIOS, DEFAULT_ANALYSIS_PROMPT, DEFAULT_VOICE, VIDEO_ASPECT_RATIOS
from fortune_oracle.exceptions import ConfigError, ExitCode, OracleError, exit_code_for_error
from fortune_oracle.models import GenerateContentResponse, InlineData, MediaInput
from fortune_oracle.services.oracle import OracleService
from fortune_oracle.utils.logging import Timer, configure_logging, log_event


def _add_angel_options(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--summary", action="store_true", help="Also summarize the fortune")
    parser.add_argument("--angel-image", default=None, help="Write a portrait of the guardian angel here")
    parser.add_argument("--animate", default=None, help="Write a short 9:16 video of the guardian angel here")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="fortune-oracle", add_help=True)
    p.add_argument("--models", default=None, help="Optional YAML file overriding model names")
    sub = p.add_subparsers(dest="command", required=True)

    fortune = sub.add_parser("fortune", help="Read a fortune from a birth date")
    fortune.add_argument("--birth-date", required=True)
    fortune.add_argument("--name", default=None)
    _add_angel_options(fortune)

    palm = sub.add_parser("palm", help="Read a fortune from a palm or face photo")
    palm.add_argument("--image", required=True, help="Path to the photo")
    palm.add_argument("--name", default=None)
    _add_angel_options(palm)

    sub.add_parser("advice", help="Get a short piece of advice for today")

    chat = sub.add_parser("chat", help="Send one message to the chat assistant")
    chat.add_argument("prompt")
    chat.add_argument("--grounding", action="store_true", help="Ground answers with web search")
    chat.add_argument("--thinking", action="store_true", help="Enable extended thinking")
    chat.add_argument("--maps", action="store_true", help="Ground answers with maps")
    chat.add_argument("--lat", type=float, default=None)
    chat.add_argument("--lng", type=float, default=None)

    image = sub.add_parser("image", help="Generate an image")
    image.add_argument("prompt")
    image.add_argument("--aspect-ratio", choices=ASPECT_RATIOS, default="1:1")
    image.add_argument("--flash", action="store_true", help="Use the flash image model instead of Imagen")
    image.add_argument("--out", required=True)

    edit = sub.add_parser("edit-image", help="Edit an image with a prompt")
    edit.add_argument("prompt")
    edit.add_argument("--image", required=True)
    edit.add_argument("--out", required=True)

    video = sub.add_parser("video", help="Generate a short video")
    video.add_argument("prompt")
    video.add_argument("--aspect-ratio", choices=VIDEO_ASPECT_RATIOS, default="16:9")
    video.add_argument("--image", default=None, help="Optional starting image")
    video.add_argument("--out", required=True)

    speak = sub.add_parser("speak", help="Synthesise speech; writes the raw audio returned by the API")
    speak.add_argument("text")
    speak.add_argument("--voice", default=DEFAULT_VOICE)
    speak.add_argument("--out", required=True)

    analyze = sub.add_parser("analyze-video", help="Ask a question about a video")
    analyze.add_argument("prompt", nargs="?", default=DEFAULT_ANALYSIS_PROMPT)
    analyze.add_argument("--video", required=True)

    transcribe = sub.add_parser("transcribe", help="Transcribe an audio file")
    transcribe.add_argument("--audio", required=True)
    return p


def read_media(path: str) -> MediaInput:
    p = Path(path)
    try:
        raw = p.read_bytes()
    except FileNotFoundError as e:
        raise ConfigError(f"Input file not found: {path}") from e
    mime_type, _ = mimetypes.guess_type(p.name)
    if mime_type is None:
        raise ConfigError(f"Cannot guess media type of {path}")
    return MediaInput(base64=base64.b64encode(raw).decode("ascii"), mime_type=mime_type)


def _require_inline(response: GenerateContentResponse) -> InlineData:
    if response.blocked_for_safety:
        raise OracleError("The response was blocked for safety reasons")
    inline = response.first_inline_data()
    if inline is None:
        raise OracleError("The response did not contain any media")
    return inline


def _write_inline(response: GenerateContentResponse, out: str) -> str:
    inline = _require_inline(response)
    Path(out).write_bytes(base64.b64decode(inline.data))
    return inline.mime_type or "application/octet-stream"


async def _angel_extras(
    service: OracleService,
    args: argparse.Namespace,
    settings: Settings,
    fortune: str,
) -> list[str]:
    """
    Follow-ups to a fortune: summary, guardian angel portrait and its animation.
    """

    lines: list[str] = []
    if args.summary:
        summary = await service.get_fortune(prompts.summarize_prompt(fortune))
        lines += ["", "Summary:", summary.text]
    if not (args.angel_image or args.animate):
        return lines

    angel_name = prompts.extract_guide_name(fortune)
    portrait = await service.generate_image_with_flash(
        prompts.angel_image_prompt(angel_name=angel_name, user_name=args.name)
    )
    inline = _require_inline(portrait)
    mime_type = inline.mime_type or "image/jpeg"
    if args.angel_image:
        Path(args.angel_image).write_bytes(base64.b64decode(inline.data))
        lines.append(f"Wrote {mime_type} portrait of {angel_name} to {args.angel_image}")
    if args.animate:
        data, content_type = await service.render_video(
            prompts.animate_angel_prompt(angel_name=angel_name, fortune=fortune, user_name=args.name),
            "9:16",
            MediaInput(base64=inline.data, mime_type=mime_type),
            poll_interval_s=settings.video_poll_interval_s,
        )
        Path(args.animate).write_bytes(data)
        lines.append(f"Wrote {content_type} to {args.animate}")
    return lines


def _format_sources(response: GenerateContentResponse) -> list[str]:
    lines: list[str] = []
    for chunk in response.grounding_chunks:
        source = chunk.get("web") or chunk.get("maps") or {}
        uri = source.get("uri")
        if uri:
            lines.append(f"- {source.get('title') or uri}: {uri}")
    return lines


async def _run_command(service: OracleService, args: argparse.Namespace, settings: Settings) -> str:
    cmd = args.command
    if cmd in ("fortune", "palm"):
        if cmd == "fortune":
            prompt = prompts.fortune_prompt(birth_date=args.birth_date, user_name=args.name, today=date.today())
            fortune = (await service.get_fortune(prompt)).text
        else:
            prompt = prompts.palm_or_face_prompt(user_name=args.name, today=date.today())
            fortune = (await service.read_palm_or_face(read_media(args.image), prompt)).text
        return "\n".join([fortune, *await _angel_extras(service, args, settings, fortune)])
    if cmd == "advice":
        return (await service.get_daily_advice(prompts.daily_advice_prompt())).text
    if cmd == "chat":
        resp = await service.send_message_to_chatbot(
            args.prompt,
            use_grounding=args.grounding,
            use_thinking=args.thinking,
            use_maps=args.maps,
            latitude=args.lat,
            longitude=args.lng,
        )
        sources = _format_sources(resp)
        if not sources:
            return resp.text
        return "\n".join([resp.text, "", "Sources:", *sources])
    if cmd == "image":
        if args.flash:
            mime = _write_inline(await service.generate_image_with_flash(args.prompt), args.out)
            return f"Wrote {mime} to {args.out}"
        image = (await service.generate_image(args.prompt, args.aspect_ratio)).first_image()
        if image is None or image.image_bytes is None:
            raise OracleError("Could not generate image. Please try a different prompt.")
        Path(args.out).write_bytes(base64.b64decode(image.image_bytes))
        return f"Wrote {image.mime_type or 'image/jpeg'} to {args.out}"
    if cmd == "edit-image":
        mime = _write_inline(await service.edit_image(read_media(args.image), args.prompt), args.out)
        return f"Wrote {mime} to {args.out}"
    if cmd == "video":
        start_image = read_media(args.image) if args.image else None
        data, content_type = await service.render_video(
            args.prompt,
            args.aspect_ratio,
            start_image,
            poll_interval_s=settings.video_poll_interval_s,
        )
        Path(args.out).write_bytes(data)
        return f"Wrote {content_type} to {args.out}"
    if cmd == "speak":
        mime = _write_inline(await service.text_to_speech(args.text, voice=args.voice), args.out)
        return f"Wrote {mime} to {args.out}"
    if cmd == "analyze-video":
        return (await service.analyze_video(read_media(args.video), args.prompt)).text
    if cmd == "transcribe":
        return (await service.transcribe_audio(read_media(args.audio))).text
    raise ConfigError(f"Unknown command: {cmd}")


async def _async_main(args: argparse.Namespace) -> int:
    timer = Timer.start_now()

    try:
        settings = load_settings_from_env()
        logger = configure_logging(level=settings.log_level)
        models = load_model_names(path=args.models)
    except ConfigError as e:
        logger = configure_logging(level="INFO")
        log_event(
            logger,
            operation="global",
            action="config",
            result="failed",
            duration_ms=timer.elapsed_ms(),
            level=logging.ERROR,
            message=str(e),
        )
        return int(ExitCode.CONFIG)

    client = ProxyClient(base_url=settings.proxy_base_url, timeout_s=settings.request_timeout_s)
    service = OracleService(
        client=client,
        logger=logger,
        policy=settings.retry_policy(),
        models=models,
    )

    try:
        output = await _run_command(service, args, settings)
    except OracleError as e:
        log_event(
            logger,
            operation=args.command,
            action="run",
            result="failed",
            duration_ms=timer.elapsed_ms(),
            level=logging.ERROR,
            message=str(e),
        )
        print(str(e), file=sys.stderr)
        return exit_code_for_error(e)
    except Exception as e:  # pragma: no cover
        log_event(
            logger,
            operation=args.command,
            action="run",
            result="failed",
            duration_ms=timer.elapsed_ms(),
            level=logging.ERROR,
            message=repr(e),
        )
        return int(ExitCode.UNEXPECTED)
    finally:
        await client.aclose()

    print(output)
    log_event(
        logger,
        operation=args.command,
        action="run",
        result="ok",
        duration_ms=timer.elapsed_ms(),
    )
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)
    return asyncio.run(_async_main(args))


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
