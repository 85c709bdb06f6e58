"""
Error kinds raised by the transcript pipeline.

Every error carries an optional remediation hint that the CLI prints
under the message. Secret values must never be placed in messages.
"""


class Y2mdError(Exception):
    """
    Base exception for all y2md errors.

    Attributes:
        message: Error description
        remediation: What the user can do about it, if anything
    """

    def __init__(self, message: str, remediation: str | None = None):
        self.message = message
        self.remediation = remediation
        super().__init__(message)

    def __str__(self) -> str:
        if self.remediation:
            return f"{self.message} | hint: {self.remediation}"
        return self.message


class ConfigError(Y2mdError):
    """Raised when persisted configuration is invalid or incomplete."""

    pass


class VideoUrlError(Y2mdError):
    """Raised when a video id can't be extracted from user input."""

    def __init__(self, url: str):
        self.url = url
        super().__init__(
            f"Not a recognizable YouTube URL or video id: '{url}'",
            remediation="Pass a watch/youtu.be/shorts URL or the 11-character video id",
        )


class CollaboratorUnavailable(Y2mdError):
    """
    Raised when an external engine can't be reached or fails.

    Attributes:
        collaborator: Short name ("captions", "audio download", "ffmpeg",
            "speech recognition", "ollama")
    """

    def __init__(
        self,
        collaborator: str,
        message: str,
        remediation: str | None = None,
    ):
        self.collaborator = collaborator
        super().__init__(message, remediation=remediation)


class CaptionsUnavailable(CollaboratorUnavailable):
    """No usable caption track; triggers the speech-recognition fallback."""

    def __init__(self, video_id: str, reason: str):
        self.video_id = video_id
        self.reason = reason
        super().__init__("captions", f"No usable captions for {video_id}: {reason}")


class CredentialMissing(Y2mdError):
    """Raised when an explicitly requested provider has no credential."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(
            f"No API key configured for provider '{provider}'",
            remediation=(
                f"Run `y2md auth set {provider}` or export "
                f"Y2MD_{provider.upper()}_API_KEY"
            ),
        )


class CredentialStoreError(Y2mdError):
    """Raised when the OS secret store rejects an operation."""

    pass


class FormattingTransportError(Y2mdError):
    """
    Base exception for LLM formatting request failures.

    Always recovered by the standard formatter; logged, never surfaced.

    Attributes:
        provider: Provider identity value
        model: Model that was requested
        original_error: Underlying exception if available
    """

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        model: str | None = None,
        original_error: Exception | None = None,
    ):
        self.provider = provider
        self.model = model
        self.original_error = original_error
        super().__init__(message)

    def __str__(self) -> str:
        parts = [self.message]
        if self.provider:
            parts.append(f"provider={self.provider}")
        if self.model:
            parts.append(f"model={self.model}")
        return " | ".join(parts)


class ModelNotInstalled(Y2mdError):
    """Raised when a local model is required but not installed."""

    def __init__(self, model: str, message: str | None = None):
        self.model = model
        super().__init__(
            message or f"Model '{model}' is not installed in Ollama",
            remediation=f"Run `y2md models pull {model}`",
        )


class ModelOperationError(Y2mdError):
    """Raised when a model download or removal fails."""

    pass
