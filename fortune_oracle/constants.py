from __future__ import annotations

PROXY_PATH = "/api/gemini"

ASPECT_RATIOS = ("1:1", "16:9", "9:16", "4:3", "3:4")
VIDEO_ASPECT_RATIOS = ("16:9", "9:16")

THINKING_BUDGET = 32768
DEFAULT_VOICE = "Kore"
TRANSCRIBE_PROMPT = "Transcribe this audio."
DEFAULT_ANALYSIS_PROMPT = "Summarize this video and identify key information."
DEFAULT_VIDEO_MIME = "video/mp4"
