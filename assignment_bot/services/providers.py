import asyncio
import json
import logging
import time
from dataclasses import dataclass
from typing import Callable, Protocol, TypeVar

import groq
import httpx
from pydantic import ValidationError

from assignment_bot.clients import GeminiClient, GroqClient
from assignment_bot.clients.groq_client import text_messages, vision_messages
from assignment_bot.config import settings
from assignment_bot.errors import (
    ProviderError,
    SchemaValidationError,
    TerminalExtractionFailure,
    TransientProviderError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class Prompt:
    system: str
    user: str
    schema: dict
    schema_name: str


@dataclass(frozen=True)
class Image:
    base64: str
    mime: str = "image/jpeg"


class ChainEntry(Protocol):
    """One language-understanding capability in a fallback chain.

    Entries differ in cost, latency and modality, never in contract: take a
    prompt (plus an image when ``accepts_image``), return a JSON object or
    raise a :class:`ProviderError`.
    """

    name: str
    accepts_image: bool

    async def infer(self, prompt: Prompt, image: Image | None, timeout: float) -> dict: ...


# ------------------------------------------------------------------
# Concrete entries
# ------------------------------------------------------------------


class GroqEntry:
    def __init__(
        self,
        client: GroqClient,
        *,
        tier: str,
        strict_schema: bool = True,
        accepts_image: bool = False,
        temperature: float = 0.2,
    ) -> None:
        self.client = client
        self.name = f"groq:{tier}:{client.model}"
        self.strict_schema = strict_schema
        self.accepts_image = accepts_image
        self.temperature = temperature

    async def infer(self, prompt: Prompt, image: Image | None, timeout: float) -> dict:
        if image is not None and self.accepts_image:
            messages = vision_messages(prompt.system, prompt.user, image.base64, image.mime)
        else:
            messages = text_messages(prompt.system, prompt.user)
        try:
            return await self.client.chat_json(
                messages,
                prompt.schema if self.strict_schema else None,
                schema_name=prompt.schema_name,
                temperature=self.temperature,
                timeout=timeout,
            )
        except groq.BadRequestError as e:
            # Groq answers 400 json_validate_failed when generation breaks the schema.
            raise SchemaValidationError(self.name, str(e)) from e
        except groq.APIError as e:
            raise TransientProviderError(self.name, str(e)) from e
        except json.JSONDecodeError as e:
            raise SchemaValidationError(self.name, f"non-JSON content: {e}") from e


class GeminiEntry:
    accepts_image = True

    def __init__(self, client: GeminiClient, *, tier: str = "fallback") -> None:
        self.client = client
        self.name = f"gemini:{tier}:{client.model}"

    async def infer(self, prompt: Prompt, image: Image | None, timeout: float) -> dict:
        text = f"{prompt.system}\n\n{prompt.user}\n\nReturn ONLY valid JSON."
        try:
            return await self.client.generate_json(
                text,
                image_base64=image.base64 if image else None,
                image_mime=image.mime if image else "image/jpeg",
                timeout=timeout,
            )
        except httpx.HTTPError as e:
            raise TransientProviderError(self.name, str(e)) from e
        except (KeyError, IndexError, TypeError) as e:
            raise SchemaValidationError(self.name, f"empty candidate list: {e!r}") from e
        except json.JSONDecodeError as e:
            raise SchemaValidationError(self.name, f"non-JSON content: {e}") from e


# ------------------------------------------------------------------
# Chain runner
# ------------------------------------------------------------------


class FallbackChain:
    """Try entries in fixed priority order until one yields a valid result.

    Each attempt is bounded by *timeout*; a timeout, a provider failure or a
    result that *validate* rejects all advance to the next entry.  Nothing is
    retried within an attempt.
    """

    def __init__(self, entries: list[ChainEntry], timeout: float | None = None) -> None:
        self.entries = list(entries)
        self.timeout = timeout or settings.attempt_timeout_seconds

    @property
    def names(self) -> list[str]:
        return [e.name for e in self.entries]

    async def run(
        self,
        prompt: Prompt,
        validate: Callable[[dict], T],
        image: Image | None = None,
    ) -> tuple[T, str]:
        """Return ``(validated result, entry name)``.

        Raises :class:`TerminalExtractionFailure` when every entry failed.
        """
        failures: list[ProviderError] = []
        for attempt, entry in enumerate(self.entries, start=1):
            started = time.monotonic()
            entry_image = image if entry.accepts_image else None
            try:
                raw = await asyncio.wait_for(
                    entry.infer(prompt, entry_image, self.timeout), self.timeout
                )
                result = validate(raw)
            except asyncio.TimeoutError:
                failure: ProviderError = TransientProviderError(
                    entry.name, f"timed out after {self.timeout:.1f}s"
                )
            except ValidationError as e:
                failure = SchemaValidationError(entry.name, str(e))
            except ProviderError as e:
                failure = e
            else:
                logger.info(
                    "%s attempt %d/%d ok via %s (%.2fs)",
                    prompt.schema_name, attempt, len(self.entries), entry.name,
                    time.monotonic() - started,
                )
                return result, entry.name

            failures.append(failure)
            logger.warning(
                "%s attempt %d/%d failed via %s (%.2fs): %s: %s",
                prompt.schema_name, attempt, len(self.entries), entry.name,
                time.monotonic() - started, type(failure).__name__, failure.detail,
            )
        raise TerminalExtractionFailure(failures)


# ------------------------------------------------------------------
# Chain assembly
# ------------------------------------------------------------------


def build_extraction_entries(
    groq_client: GroqClient, gemini_client: GeminiClient, *, with_image: bool
) -> list[ChainEntry]:
    """Extraction chain for one message shape.

    Text only: reasoning → general text → Gemini.
    With an image: vision models are tried first, then the same text chain.
    """
    entries: list[ChainEntry] = []
    if with_image:
        entries += [
            GroqEntry(groq_client.with_model(m), tier="vision", strict_schema=False, accepts_image=True)
            for m in settings.vision_models
        ]
    entries += [
        GroqEntry(groq_client.with_model(m), tier="reasoning", strict_schema=False, temperature=0.6)
        for m in settings.reasoning_models
    ]
    entries += [
        GroqEntry(groq_client.with_model(m), tier="text")
        for m in settings.text_models
    ]
    entries += [GeminiEntry(gemini_client.with_model(m)) for m in settings.gemini_models]
    return entries


def build_verification_entries(gemini_client: GeminiClient) -> list[ChainEntry]:
    return [
        GeminiEntry(gemini_client.with_model(m), tier="verify")
        for m in settings.gemini_models
    ]
