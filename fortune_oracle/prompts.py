"""English prompt templates for the fortune-telling flow."""

from __future__ import annotations

import re
from datetime import date

NAME_FALLBACK = "Seeker"
MYSTERIOUS_GUIDE = "a mysterious guide"
GUIDE_PREFIX = "Your guardian angel is"
GUIDE_SUFFIX = "."

_GUIDE_RE = re.compile(rf"{re.escape(GUIDE_PREFIX)}\s*(.*?){re.escape(GUIDE_SUFFIX)}")


def format_date(day: date) -> str:
    return f"{day:%B} {day.day}, {day.year}"


def date_prefix(day: date) -> str:
    return f"Today is {format_date(day)}. "


def name_for_prompt(user_name: str | None) -> str:
    name = (user_name or "").strip()
    return name or NAME_FALLBACK


def fortune_prompt(*, birth_date: str, user_name: str | None, today: date) -> str:
    return date_prefix(today) + (
        f"Act as a warm, mystical fortune teller. {name_for_prompt(user_name)} was born on {birth_date}. "
        "Read their fortune for the coming days, touching on love, work and health. "
        f'Name the angel who watches over them in one sentence of the form "{GUIDE_PREFIX} <name>{GUIDE_SUFFIX}"'
    )


def palm_or_face_prompt(*, user_name: str | None, today: date) -> str:
    return date_prefix(today) + (
        f"Act as a warm, mystical fortune teller. The image shows the palm or face of {name_for_prompt(user_name)}. "
        "Read the lines and features you see and tell their fortune for the coming days. "
        f'Name the angel who watches over them in one sentence of the form "{GUIDE_PREFIX} <name>{GUIDE_SUFFIX}"'
    )


def angel_image_prompt(*, angel_name: str, user_name: str | None) -> str:
    return (
        f"A luminous, ethereal portrait of the guardian angel {angel_name}, "
        f"watching over {name_for_prompt(user_name)}. Soft celestial light, painterly style, no text."
    )


def animate_angel_prompt(*, angel_name: str, fortune: str, user_name: str | None) -> str:
    return (
        f"Gently animate the guardian angel {angel_name} as it blesses {name_for_prompt(user_name)}. "
        f"The mood follows this fortune: {fortune}"
    )


def summarize_prompt(fortune: str) -> str:
    return f'Summarize this fortune in two or three short sentences: "{fortune}"'


def daily_advice_prompt() -> str:
    return "As a gentle oracle, give one short piece of advice for today. Keep it under 40 words."


def extract_guide_name(fortune: str) -> str:
    match = _GUIDE_RE.search(fortune)
    if match is None or not match.group(1).strip():
        return MYSTERIOUS_GUIDE
    return match.group(1).strip()
