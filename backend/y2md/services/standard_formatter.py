"""
Deterministic transcript formatter.

Splits raw transcript text into sentences and groups them into
paragraphs. Used directly when LLM formatting is off, and as the
fallback whenever LLM formatting fails. Pure functions only: no I/O,
no configuration, never raises for string input.

Example:
    text = format_standard("So today we. Talk about rust. It is safe.", 2)
    # "So today we. Talk about rust.\\n\\nIt is safe."
"""

import re

# Sentence boundary: whitespace after terminal punctuation
SENTENCE_BOUNDARY = re.compile(r"(?<=[.!?])\s+")
SENTENCE_TERMINATORS = ".!?"

# Auto-caption text usually has no punctuation at all. When the average
# run between terminators exceeds this, breaks are inserted every
# WORDS_PER_INSERTED_SENTENCE words.
UNPUNCTUATED_WORDS_PER_SENTENCE = 40
WORDS_PER_INSERTED_SENTENCE = 12

# Music/lyric heuristic
MUSIC_GLYPHS = ("♪", "♫", "♬")
MIN_LYRIC_LINES = 4
MAX_LYRIC_LINE_WORDS = 8
MIN_SHORT_LINE_RATIO = 0.8
MIN_UNPUNCTUATED_LINE_RATIO = 0.8
MAX_UNIQUE_LINE_RATIO = 0.6

DEFAULT_PARAGRAPH_LENGTH = 4


def format_standard(
    raw_text: str,
    paragraph_length: int = DEFAULT_PARAGRAPH_LENGTH,
    *,
    compact: bool = False,
    force_formatting: bool = False,
) -> str:
    """
    Format raw transcript text into paragraphs.

    Args:
        raw_text: Unformatted transcript text
        paragraph_length: Sentences per paragraph (values below 1 act as 1)
        compact: Skip cleanup, only regroup existing sentences
        force_formatting: Reflow even if the text looks like lyrics

    Returns:
        Paragraphs separated by a blank line, or "" for empty input
    """
    if not raw_text or not raw_text.strip():
        return ""

    if not force_formatting and is_music_content(raw_text):
        return preserve_lines(raw_text)

    text = raw_text if compact else clean_transcript(raw_text)
    sentences = split_sentences(text)
    return group_paragraphs(sentences, paragraph_length)


def split_sentences(text: str) -> list[str]:
    """Split text into sentences, keeping terminal punctuation."""
    normalized = " ".join(text.split())
    if not normalized:
        return []
    return [s for s in SENTENCE_BOUNDARY.split(normalized) if s]


def group_paragraphs(sentences: list[str], paragraph_length: int) -> str:
    """Join every `paragraph_length` sentences into one paragraph."""
    size = max(1, paragraph_length)
    paragraphs = [
        " ".join(sentences[start : start + size])
        for start in range(0, len(sentences), size)
    ]
    return "\n\n".join(paragraphs)


def clean_transcript(text: str) -> str:
    """
    Normalize whitespace, punctuation and capitalization.

    Unpunctuated text gets a sentence break every 12 words; already
    punctuated text keeps its sentences. Output always ends with a
    terminator.
    """
    words = text.split()
    if not words:
        return ""

    terminators = sum(1 for word in words if word[-1] in SENTENCE_TERMINATORS)
    if len(words) / max(terminators, 1) > UNPUNCTUATED_WORDS_PER_SENTENCE:
        words = _insert_sentence_breaks(words)

    sentences = [_capitalize(s) for s in split_sentences(" ".join(words))]
    cleaned = " ".join(sentences)

    if cleaned[-1] not in SENTENCE_TERMINATORS:
        cleaned = cleaned.rstrip(",;:-") + "."
    return cleaned


def _insert_sentence_breaks(words: list[str]) -> list[str]:
    result: list[str] = []
    run = 0
    for word in words:
        run += 1
        if word[-1] in SENTENCE_TERMINATORS:
            run = 0
        elif run >= WORDS_PER_INSERTED_SENTENCE:
            stripped = word.rstrip(",;:-")
            word = (stripped or word) + "."
            run = 0
        result.append(word)
    return result


def _capitalize(sentence: str) -> str:
    for i, char in enumerate(sentence):
        if char.isalpha():
            if char.islower():
                return sentence[:i] + char.upper() + sentence[i + 1 :]
            return sentence
    return sentence


def is_music_content(text: str) -> bool:
    """
    Guess whether text is song lyrics rather than speech.

    True for music-note glyphs, or for text made mostly of short,
    unpunctuated, repeated lines.
    """
    if any(glyph in text for glyph in MUSIC_GLYPHS):
        return True

    lines = [line.strip() for line in text.splitlines() if line.strip()]
    if len(lines) < MIN_LYRIC_LINES:
        return False

    total = len(lines)
    short = sum(1 for line in lines if len(line.split()) <= MAX_LYRIC_LINE_WORDS)
    unpunctuated = sum(1 for line in lines if line[-1] not in SENTENCE_TERMINATORS)
    unique = len({line.lower() for line in lines})

    return (
        short / total >= MIN_SHORT_LINE_RATIO
        and unpunctuated / total >= MIN_UNPUNCTUATED_LINE_RATIO
        and unique / total <= MAX_UNIQUE_LINE_RATIO
    )


def preserve_lines(text: str) -> str:
    """Keep line structure; strip trailing spaces and collapse blank runs."""
    lines: list[str] = []
    for line in text.strip().splitlines():
        line = line.rstrip()
        if not line and lines and not lines[-1]:
            continue
        lines.append(line)
    return "\n".join(lines)


if __name__ == "__main__":
    """Run tests when executed directly."""
    print("\nRunning standard formatter tests...\n")

    print("Test 1: Two sentences per paragraph...", end=" ")
    result = format_standard(
        "So today we. Talk about rust. It is safe. No gc needed.", 2
    )
    assert result == "So today we. Talk about rust.\n\nIt is safe. No gc needed.", result
    print("OK")

    print("Test 2: Empty input...", end=" ")
    assert format_standard("   ", 3) == ""
    print("OK")

    print("Test 3: Unpunctuated captions...", end=" ")
    words = " ".join(f"word{i}" for i in range(60))
    result = format_standard(words, 2)
    assert result.count("\n\n") == 2, result
    print("OK")

    print("Test 4: Lyrics pass through...", end=" ")
    lyrics = "la la love\nla la love\noh baby\nla la love\noh baby"
    assert format_standard(lyrics, 2) == lyrics
    print("OK")

    print("\n" + "=" * 40)
    print("All standard formatter tests passed!")
