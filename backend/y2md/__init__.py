"""YouTube to markdown transcripts."""

__version__ = "0.1.0"
