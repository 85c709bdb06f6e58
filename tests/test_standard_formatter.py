"""Tests for the deterministic formatter."""

from y2md.services.standard_formatter import (
    clean_transcript,
    format_standard,
    is_music_content,
    split_sentences,
)


class TestFormatStandard:
    """Paragraph grouping"""

    def test_two_sentences_per_paragraph(self):
        result = format_standard("So today we. Talk about rust. It is safe. No gc needed.", 2)

        assert result == "So today we. Talk about rust.\n\nIt is safe. No gc needed."

    def test_empty_input(self):
        assert format_standard("") == ""
        assert format_standard("  \n\t ") == ""

    def test_deterministic(self):
        text = "first point here. second point? third one! and the last"
        assert format_standard(text, 3) == format_standard(text, 3)

    def test_reapplication_keeps_paragraph_count(self):
        text = " ".join(f"Sentence number {i} is here." for i in range(11))
        once = format_standard(text, 3)
        twice = format_standard(once, 3)

        assert abs(once.count("\n\n") - twice.count("\n\n")) <= 1

    def test_paragraph_length_below_one_acts_as_one(self):
        result = format_standard("One. Two.", 0)

        assert result == "One.\n\nTwo."

    def test_unpunctuated_captions_get_sentence_breaks(self):
        words = " ".join(f"word{i}" for i in range(60))

        result = format_standard(words, 2)

        assert result.count("\n\n") == 2
        assert result.endswith(".")

    def test_compact_skips_cleanup(self):
        result = format_standard("hello there. general kenobi", 4, compact=True)

        assert result == "hello there. general kenobi"

    def test_lyrics_are_kept_line_by_line(self):
        lyrics = "la la love\nla la love\noh baby\nla la love\noh baby"

        assert format_standard(lyrics, 2) == lyrics

    def test_force_formatting_reflows_lyrics(self):
        lyrics = "la la love\nla la love\noh baby\nla la love\noh baby"

        result = format_standard(lyrics, 2, force_formatting=True)

        assert "\n" not in result
        assert result.startswith("La la love")


class TestCleanTranscript:
    """Capitalization and terminators"""

    def test_capitalizes_sentences(self):
        assert clean_transcript("hello. world") == "Hello. World."

    def test_trailing_punctuation_replaced(self):
        assert clean_transcript("and then,") == "And then."

    def test_split_sentences_keeps_terminators(self):
        assert split_sentences("A b. C d? E!") == ["A b.", "C d?", "E!"]


class TestIsMusicContent:
    """Lyric heuristic"""

    def test_music_glyphs(self):
        assert is_music_content("♪ never gonna give you up ♪")

    def test_repeated_short_lines(self):
        assert is_music_content("oh oh oh\nyeah yeah\noh oh oh\nyeah yeah\noh oh oh")

    def test_speech_is_not_music(self):
        text = (
            "Welcome back to the channel.\n"
            "Today we are looking at memory safety.\n"
            "Rust has an ownership model.\n"
            "It prevents data races at compile time."
        )
        assert not is_music_content(text)

    def test_too_few_lines(self):
        assert not is_music_content("la la\nla la")
