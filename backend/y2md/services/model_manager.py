"""
Local model management for the Ollama provider.

Wraps Ollama's HTTP API:
- GET  /api/version  health probe
- GET  /api/tags     installed models
- POST /api/pull     streamed download (NDJSON progress lines)
- DELETE /api/delete remove a model

"Is model X installed" answers are cached in memory for 30 seconds
so repeated checks during one run cost a single probe.

Example:
    async with OllamaModelManager("http://localhost:11434") as manager:
        if not await manager.is_model_available("qwen2.5:7b"):
            await manager.download("qwen2.5:7b", progress_sink=print)
"""

import json
import logging
import time
from collections.abc import Callable
from datetime import datetime

import httpx
from tenacity import (
    AsyncRetrying,
    RetryError,
    retry_if_result,
    stop_after_attempt,
    wait_fixed,
)

from y2md.models.schemas import LocalModel, ModelAvailabilityEntry, PullProgress
from y2md.services.errors import (
    CollaboratorUnavailable,
    ModelNotInstalled,
    ModelOperationError,
)

logger = logging.getLogger(__name__)

MODEL_CACHE_TTL_SECONDS = 30.0
HEALTH_TIMEOUT_SECONDS = 5.0
REQUEST_TIMEOUT_SECONDS = 30.0

# Ollama may report "success" before the model shows up in /api/tags
VERIFY_ATTEMPTS = 5
VERIFY_WAIT_SECONDS = 2.0

ProgressSink = Callable[[PullProgress], None]


class ModelAvailabilityCache:
    """
    In-memory TTL cache of model availability.

    Process lifetime only; never persisted.

    Args:
        ttl: Entry lifetime in seconds
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(
        self,
        ttl: float = MODEL_CACHE_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.clock = clock
        self._entries: dict[str, ModelAvailabilityEntry] = {}

    def get(self, model_name: str) -> ModelAvailabilityEntry | None:
        """Return a fresh entry, or None if missing or expired."""
        entry = self._entries.get(model_name)
        if entry is None:
            return None
        if self.clock() - entry.checked_at >= self.ttl:
            del self._entries[model_name]
            return None
        return entry

    def put(self, model_name: str, available: bool) -> ModelAvailabilityEntry:
        """Record a probe result."""
        entry = ModelAvailabilityEntry(
            model_name=model_name,
            available=available,
            checked_at=self.clock(),
        )
        self._entries[model_name] = entry
        return entry

    def invalidate(self, model_name: str | None = None) -> None:
        """Drop one entry, or all entries if no name is given."""
        if model_name is None:
            self._entries.clear()
        else:
            self._entries.pop(model_name, None)


def model_matches(installed: str, requested: str) -> bool:
    """True if an installed tag satisfies a requested name ("x" == "x:latest")."""
    if installed == requested:
        return True
    if ":" not in requested:
        return installed == f"{requested}:latest"
    if requested.endswith(":latest"):
        return installed == requested.removesuffix(":latest")
    return False


class OllamaModelManager:
    """
    Health, listing, download and removal of local Ollama models.

    Args:
        base_url: Ollama endpoint
        http_client: Shared HTTP client (a private one is created if None)
        cache: Availability cache (a fresh 30 s cache if None)
    """

    def __init__(
        self,
        base_url: str,
        http_client: httpx.AsyncClient | None = None,
        cache: ModelAvailabilityCache | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(timeout=None)
        self.cache = cache or ModelAvailabilityCache()

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self.http_client.aclose()

    async def __aenter__(self) -> "OllamaModelManager":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    async def is_service_available(self) -> bool:
        """Lightweight health probe against /api/version."""
        try:
            response = await self.http_client.get(
                f"{self.base_url}/api/version",
                timeout=HEALTH_TIMEOUT_SECONDS,
            )
        except httpx.HTTPError as e:
            logger.debug(f"Ollama not available: {e}")
            return False

        if response.status_code != 200:
            logger.debug(f"Ollama health probe returned HTTP {response.status_code}")
            return False

        logger.debug(f"Ollama available at {self.base_url}")
        return True

    async def require_service(self) -> None:
        """
        Raise a clear error if the service is down.

        Raises:
            CollaboratorUnavailable: If /api/version doesn't answer
        """
        if not await self.is_service_available():
            raise CollaboratorUnavailable(
                "ollama",
                f"Ollama service is not running at {self.base_url}",
                remediation="Start it with `ollama serve` or set Y2MD_OLLAMA_URL",
            )

    async def list_local(self) -> list[LocalModel]:
        """
        List installed models.

        Raises:
            CollaboratorUnavailable: If the service is down
            ModelOperationError: If the listing request fails
        """
        await self.require_service()
        models = await self._fetch_tags()

        # Listing is a fresh probe of every model; refresh the cache
        for model in models:
            self.cache.put(model.name, True)

        return models

    async def is_model_available(self, model: str, refresh: bool = False) -> bool:
        """
        Check whether a model is installed, using the 30 s cache.

        Args:
            model: Model name, e.g. "qwen2.5:7b"
            refresh: Bypass the cache and probe

        Raises:
            CollaboratorUnavailable: If the service is down
        """
        if not refresh:
            entry = self.cache.get(model)
            if entry is not None:
                logger.debug(f"Model availability cache hit: {model}={entry.available}")
                return entry.available

        await self.require_service()
        installed = await self._fetch_tags()
        available = any(model_matches(m.name, model) for m in installed)
        self.cache.put(model, available)

        logger.debug(f"Model availability probe: {model}={available}")
        return available

    async def download(
        self,
        model: str,
        progress_sink: ProgressSink | None = None,
    ) -> None:
        """
        Pull a model, forwarding streamed progress to the sink.

        No timeout: the stream ends when Ollama says so. Success is only
        reported after the model is visible in a fresh listing.

        Raises:
            CollaboratorUnavailable: If the service is down
            ModelOperationError: If Ollama reports an error
            ModelNotInstalled: If the model is still missing afterwards
        """
        await self.require_service()
        logger.info(f"Pulling model: {model}")

        try:
            async with self.http_client.stream(
                "POST",
                f"{self.base_url}/api/pull",
                json={"model": model, "stream": True},
                timeout=httpx.Timeout(None, connect=REQUEST_TIMEOUT_SECONDS),
            ) as response:
                if response.status_code != 200:
                    body = (await response.aread()).decode("utf-8", "replace")
                    raise ModelOperationError(
                        f"Pull of '{model}' failed: HTTP {response.status_code}: {body[:500]}"
                    )

                async for line in response.aiter_lines():
                    if not line.strip():
                        continue
                    progress = self._parse_progress_line(model, line)
                    if progress_sink is not None:
                        progress_sink(progress)

        except httpx.HTTPError as e:
            raise ModelOperationError(f"Pull of '{model}' interrupted: {e}") from e

        self.cache.invalidate(model)
        await self._verify_installed(model)
        logger.info(f"Model installed: {model}")

    async def remove(self, model: str) -> None:
        """
        Delete a model. Irreversible; confirmation is the caller's job.

        Raises:
            CollaboratorUnavailable: If the service is down
            ModelNotInstalled: If Ollama doesn't know the model
            ModelOperationError: If the delete request fails
        """
        await self.require_service()

        try:
            response = await self.http_client.request(
                "DELETE",
                f"{self.base_url}/api/delete",
                json={"model": model},
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
        except httpx.HTTPError as e:
            raise ModelOperationError(f"Removal of '{model}' failed: {e}") from e

        if response.status_code == 404:
            self.cache.put(model, False)
            raise ModelNotInstalled(model)
        if response.status_code != 200:
            raise ModelOperationError(
                f"Removal of '{model}' failed: HTTP {response.status_code}: "
                f"{response.text[:500]}"
            )

        self.cache.put(model, False)
        logger.info(f"Model removed: {model}")

    async def _fetch_tags(self) -> list[LocalModel]:
        try:
            response = await self.http_client.get(
                f"{self.base_url}/api/tags",
                timeout=REQUEST_TIMEOUT_SECONDS,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise ModelOperationError(
                f"Model listing failed: HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise CollaboratorUnavailable(
                "ollama",
                f"Cannot reach Ollama at {self.base_url}: {e}",
                remediation="Start it with `ollama serve`",
            ) from e

        return [
            LocalModel(
                name=item.get("name") or item.get("model", ""),
                size_bytes=item.get("size"),
                modified_at=_parse_timestamp(item.get("modified_at")),
            )
            for item in data.get("models", [])
        ]

    def _parse_progress_line(self, model: str, line: str) -> PullProgress:
        try:
            event = json.loads(line)
        except json.JSONDecodeError as e:
            raise ModelOperationError(f"Malformed pull progress for '{model}': {line[:200]}") from e

        if "error" in event:
            raise ModelOperationError(f"Pull of '{model}' failed: {event['error']}")

        return PullProgress(
            status=event.get("status", ""),
            completed=event.get("completed"),
            total=event.get("total"),
        )

    async def _verify_installed(self, model: str) -> None:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(VERIFY_ATTEMPTS),
                wait=wait_fixed(VERIFY_WAIT_SECONDS),
                retry=retry_if_result(lambda available: not available),
            ):
                with attempt:
                    available = await self.is_model_available(model, refresh=True)
                if not attempt.retry_state.outcome.failed:
                    attempt.retry_state.set_result(available)
        except RetryError as e:
            raise ModelNotInstalled(
                model,
                f"Pull of '{model}' finished but the model is not listed by Ollama",
            ) from e


def _parse_timestamp(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        logger.debug(f"Unparseable modified_at: {value}")
        return None
