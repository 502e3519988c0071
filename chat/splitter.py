"""Split model output into spoken and whiteboard parts."""

import re
from pydantic import BaseModel

SPEECH_PATTERN = re.compile(r"<speech>(.*?)</speech>", re.IGNORECASE | re.DOTALL)
DISPLAY_PATTERN = re.compile(r"<display>(.*?)</display>", re.IGNORECASE | re.DOTALL)

# Speech derived from display-only output is cut to this many characters
SPEECH_FALLBACK_CHARS = 500


class SplitResponse(BaseModel):
    """Speech (for TTS) and display (for the whiteboard) parts of a reply."""
    speech: str
    display: str


def split_speech_display(raw: str) -> SplitResponse:
    """
    Extract ``<speech>`` and ``<display>`` sections.

    Missing sections are derived from the other one; output without either
    tag is used verbatim for both.
    """
    speech_match = SPEECH_PATTERN.search(raw)
    display_match = DISPLAY_PATTERN.search(raw)

    speech = speech_match.group(1).strip() if speech_match else ""
    display = display_match.group(1).strip() if display_match else ""

    if not speech and not display:
        return SplitResponse(speech=raw, display=raw)
    if not speech:
        return SplitResponse(speech=display[:SPEECH_FALLBACK_CHARS], display=display)
    if not display:
        return SplitResponse(speech=speech, display=speech)
    return SplitResponse(speech=speech, display=display)
