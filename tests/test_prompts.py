from __future__ import annotations

from datetime import date

from fortune_oracle import prompts


def test_fortune_prompt_has_date_name_and_guide_instruction() -> None:
    text = prompts.fortune_prompt(birth_date="1990-04-02", user_name="  Lena ", today=date(2026, 10, 19))

    assert text.startswith("Today is October 19, 2026. ")
    assert "Lena was born on 1990-04-02" in text
    assert prompts.GUIDE_PREFIX in text


def test_blank_name_falls_back() -> None:
    assert prompts.name_for_prompt("   ") == prompts.NAME_FALLBACK
    assert prompts.name_for_prompt(None) == prompts.NAME_FALLBACK


def test_extract_guide_name() -> None:
    fortune = "Love is near. Your guardian angel is Seraphiel. Work will flourish."

    assert prompts.extract_guide_name(fortune) == "Seraphiel"


def test_extract_guide_name_without_match() -> None:
    assert prompts.extract_guide_name("No angels today") == prompts.MYSTERIOUS_GUIDE


def test_angel_prompts_name_the_angel_and_the_seeker() -> None:
    image = prompts.angel_image_prompt(angel_name="Seraphiel", user_name=None)
    video = prompts.animate_angel_prompt(angel_name="Seraphiel", fortune="Luck is near.", user_name="Lena")

    assert "Seraphiel" in image and prompts.NAME_FALLBACK in image
    assert "Seraphiel" in video and "Lena" in video and video.endswith("Luck is near.")


def test_summarize_prompt_quotes_the_fortune() -> None:
    assert prompts.summarize_prompt("Luck is near.").endswith('"Luck is near."')
