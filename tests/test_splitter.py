"""Tests for the speech/display splitter."""

import pytest
from chat.splitter import split_speech_display, SPEECH_FALLBACK_CHARS


class TestSplitSpeechDisplay:
    """Test all tag presence combinations."""

    def test_both_tags_present(self):
        """Test both sections are returned trimmed."""
        raw = "<speech>  Hello there.  </speech>\n<display>\n- point one\n</display>"
        result = split_speech_display(raw)

        assert result.speech == "Hello there."
        assert result.display == "- point one"

    def test_only_speech(self):
        """Test display falls back to speech."""
        result = split_speech_display("<speech>Hi</speech>")

        assert result.speech == "Hi"
        assert result.display == "Hi"

    def test_only_display_short(self):
        """Test speech falls back to display."""
        result = split_speech_display("<display>x = 1</display>")

        assert result.speech == "x = 1"
        assert result.display == "x = 1"

    def test_only_display_truncates_speech(self):
        """Test speech derived from display is capped."""
        long_display = "a" * (SPEECH_FALLBACK_CHARS + 200)
        result = split_speech_display(f"<display>{long_display}</display>")

        assert result.speech == "a" * SPEECH_FALLBACK_CHARS
        assert result.display == long_display

    def test_no_tags_uses_raw_text(self):
        """Test non-conforming output is used verbatim for both."""
        raw = "  Plain answer without tags\n"
        result = split_speech_display(raw)

        assert result.speech == raw
        assert result.display == raw

    def test_multiline_content(self):
        """Test sections spanning several lines, including code blocks."""
        raw = (
            "<speech>\nFirst line.\nSecond line.\n</speech>\n"
            "<display>\n```python\nfor i in range(3):\n    print(i)\n```\n</display>"
        )
        result = split_speech_display(raw)

        assert result.speech == "First line.\nSecond line."
        assert result.display == "```python\nfor i in range(3):\n    print(i)\n```"

    def test_tags_are_case_insensitive(self):
        """Test upper-case tags are recognized."""
        result = split_speech_display("<SPEECH>Hi</SPEECH><Display>Board</Display>")

        assert result.speech == "Hi"
        assert result.display == "Board"

    def test_empty_tags_fall_back_to_raw(self):
        """Test empty sections count as missing."""
        raw = "<speech> </speech><display></display>"
        result = split_speech_display(raw)

        assert result.speech == raw
        assert result.display == raw

    @pytest.mark.parametrize("raw", ["", "<speech>unclosed", "</display>"])
    def test_malformed_tags_fall_back(self, raw):
        """Test unmatched tags behave like no tags."""
        result = split_speech_display(raw)

        assert result.speech == raw
        assert result.display == raw
