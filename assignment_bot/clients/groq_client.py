import json

from groq import AsyncGroq

from assignment_bot.config import settings


class GroqClient:
    """Async wrapper around the official Groq SDK with easy model switching.

    Usage::

        groq = GroqClient("llama-3.3-70b-versatile")
        data = await groq.chat_json(messages, MY_SCHEMA)   # strict JSON Schema
        data = await groq.chat_json(messages)              # plain JSON object mode

        vision = groq.with_model("meta-llama/llama-4-scout-17b-16e-instruct")
        data = await vision.chat_json(vision_messages(system, user, image_b64))

    ``with_model()`` shares the underlying ``AsyncGroq`` HTTP session, so a
    whole fallback chain runs over one connection pool.
    """

    def __init__(self, model: str | None = None, api_key: str | None = None) -> None:
        self._model = model or settings.text_models[0]
        self._client = AsyncGroq(api_key=api_key or settings.groq_api_key)

    # ------------------------------------------------------------------
    # Model switching
    # ------------------------------------------------------------------
    @property
    def model(self) -> str:
        return self._model

    def with_model(self, model_name: str) -> "GroqClient":
        """Return a new GroqClient bound to *model_name*, sharing the session."""
        clone = GroqClient.__new__(GroqClient)
        clone._model = model_name
        clone._client = self._client  # shared, no new HTTP connection
        return clone

    # ------------------------------------------------------------------
    # Completions
    # ------------------------------------------------------------------
    async def chat_json(
        self,
        messages: list[dict],
        response_schema: dict | None = None,
        *,
        schema_name: str = "response",
        temperature: float | None = None,
        max_tokens: int | None = None,
        timeout: float | None = None,
    ) -> dict:
        """Structured-output completion.  Returns the parsed JSON as a dict.

        With *response_schema*, Groq's strict JSON Schema mode is used (every
        object needs ``"additionalProperties": false`` and all properties in
        ``"required"``).  Without it the model only has to emit a JSON
        object, which is what reasoning and vision models support.

        Raises ``groq.APIError`` subclasses on transport/HTTP failures and
        ``json.JSONDecodeError`` when the content is not JSON.
        """
        if response_schema is not None:
            response_format: dict = {
                "type": "json_schema",
                "json_schema": {
                    "name": schema_name,
                    "strict": True,
                    "schema": response_schema,
                },
            }
        else:
            response_format = {"type": "json_object"}

        kwargs: dict = {
            "model": self._model,
            "messages": messages,
            "response_format": response_format,
        }
        if temperature is not None:
            kwargs["temperature"] = temperature
        if max_tokens is not None:
            kwargs["max_tokens"] = max_tokens
        if timeout is not None:
            kwargs["timeout"] = timeout

        resp = await self._client.chat.completions.create(**kwargs)
        return json.loads(resp.choices[0].message.content or "")


def text_messages(system: str, user: str) -> list[dict]:
    return [
        {"role": "system", "content": system},
        {"role": "user", "content": user},
    ]


def vision_messages(
    system: str, user: str, image_base64: str, image_mime: str = "image/jpeg"
) -> list[dict]:
    """Vision models take the image as a data URL inside the user turn."""
    return [
        {"role": "system", "content": system},
        {
            "role": "user",
            "content": [
                {"type": "text", "text": user},
                {
                    "type": "image_url",
                    "image_url": {"url": f"data:{image_mime};base64,{image_base64}"},
                },
            ],
        },
    ]
