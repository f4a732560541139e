import json

import httpx

from assignment_bot.config import settings


class GeminiClient:
    """Minimal async client for Gemini's ``generateContent`` REST endpoint.

    Like :class:`GroqClient`, ``with_model()`` returns a clone that shares the
    underlying ``httpx.AsyncClient``.
    """

    def __init__(
        self,
        model: str | None = None,
        api_key: str | None = None,
        http: httpx.AsyncClient | None = None,
    ) -> None:
        self._model = model or settings.gemini_models[0]
        self._api_key = api_key or settings.gemini_api_key
        self._http = http or httpx.AsyncClient(base_url=settings.gemini_base_url)

    @property
    def model(self) -> str:
        return self._model

    def with_model(self, model_name: str) -> "GeminiClient":
        return GeminiClient(model_name, self._api_key, self._http)

    async def generate_json(
        self,
        prompt: str,
        *,
        image_base64: str | None = None,
        image_mime: str = "image/jpeg",
        temperature: float = 0.2,
        max_output_tokens: int = 4096,
        timeout: float | None = None,
    ) -> dict:
        """Run *prompt* in JSON mode and return the parsed object.

        Raises ``httpx.HTTPError`` on transport/HTTP failures, ``KeyError``/
        ``IndexError`` on an empty candidate list and ``json.JSONDecodeError``
        on non-JSON or missing text.
        """
        parts: list[dict] = [{"text": prompt}]
        if image_base64:
            parts.append({"inline_data": {"mime_type": image_mime, "data": image_base64}})
        body = {
            "contents": [{"parts": parts}],
            "generationConfig": {
                "temperature": temperature,
                "maxOutputTokens": max_output_tokens,
                "responseMimeType": "application/json",
            },
        }
        resp = await self._http.post(
            f"/models/{self._model}:generateContent",
            params={"key": self._api_key},
            json=body,
            timeout=timeout,
        )
        resp.raise_for_status()
        text = resp.json()["candidates"][0]["content"]["parts"][0]["text"] or ""
        return json.loads(_strip_fences(text))

    async def aclose(self) -> None:
        await self._http.aclose()


def _strip_fences(text: str) -> str:
    """Drop a surrounding ```json fence, which Gemini sometimes adds anyway."""
    cleaned = text.strip()
    if cleaned.startswith("```"):
        cleaned = cleaned.removeprefix("```json").removeprefix("```")
        cleaned = cleaned.removesuffix("```")
    return cleaned.strip()
