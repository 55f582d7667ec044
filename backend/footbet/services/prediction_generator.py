"""
backend/footbet/services/prediction_generator.py

Purpose:
    Calls the generative service (Gemini) with a composed prompt and a
    declared JSON output schema, then validates the answer against the
    ruleset's pydantic model. Either a fully conformant model comes back or
    the call fails; partial results are never returned.

Dependencies:
    - google-genai
    - footbet.services.prompt_composer
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any, TypeVar

import httpx
from google import genai
from google.genai import errors as genai_errors
from google.genai import types
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from footbet.config import settings
from footbet.errors import ConfigurationError, GenerationError, ValidationError
from footbet.services.prompt_composer import ComposedPrompt, Ruleset

logger = logging.getLogger("footbet.prediction_generator")

ModelT = TypeVar("ModelT", bound=BaseModel)


def _format_errors(exc: PydanticValidationError) -> list[dict[str, Any]]:
    return [
        {"field": ".".join(str(p) for p in err.get("loc", ())), "message": err.get("msg", "")}
        for err in exc.errors()
    ]


def parse_structured(text: str, output_model: type[ModelT]) -> ModelT:
    """Decode a JSON answer and validate it against ``output_model``.

    Unparseable output is a ``GenerationError``; output that parses but breaks
    the schema (unknown or missing fields, out-of-range numbers, bad enum
    values) is a ``ValidationError``.
    """
    try:
        data = json.loads(text)
    except ValueError as exc:
        raise GenerationError("AI analysis returned output that is not valid JSON.") from exc
    if not isinstance(data, dict):
        raise GenerationError("AI analysis returned JSON that is not an object.")

    try:
        return output_model.model_validate(data)
    except PydanticValidationError as exc:
        errors = _format_errors(exc)
        for err in errors[:10]:
            logger.warning("Rejected generated value at %s: %s", err["field"], err["message"])
        first = errors[0] if errors else {"field": "?", "message": "?"}
        raise ValidationError(
            f"AI output violates the {output_model.__name__} schema "
            f"({len(errors)} error(s), first: {first['field']}: {first['message']}).",
            errors=errors,
        ) from exc


class PredictionGenerator:
    """Structured-output wrapper around the google-genai async client."""

    def __init__(self, client: Any = None, *, model: str | None = None):
        self._client = client
        self._model = model

    def _get_client(self) -> Any:
        if self._client is None:
            api_key = settings.GEMINI_API_KEY.strip()
            if not api_key:
                raise ConfigurationError("GEMINI_API_KEY is not configured.")
            self._client = genai.Client(api_key=api_key)
        return self._client

    async def generate_json(
        self,
        *,
        system_instruction: str,
        user_prompt: str,
        response_schema: dict[str, Any],
        temperature: float | None = None,
    ) -> str:
        client = self._get_client()
        model = self._model or settings.GEMINI_MODEL
        config = types.GenerateContentConfig(
            system_instruction=system_instruction,
            response_mime_type="application/json",
            response_schema=response_schema,
            temperature=settings.GEMINI_TEMPERATURE if temperature is None else temperature,
        )
        started = time.perf_counter()
        try:
            response = await client.aio.models.generate_content(
                model=model,
                contents=user_prompt,
                config=config,
            )
        except genai_errors.APIError as exc:
            logger.error("Generative service call failed (%s): %s", model, exc)
            raise GenerationError(f"Generative service call failed: {exc}") from exc
        except httpx.HTTPError as exc:
            # Transport failures (connect, timeout) are not wrapped by the SDK.
            logger.error("Generative service unreachable (%s): %s", model, exc)
            raise GenerationError(f"Generative service unreachable: {exc}") from exc

        text = (getattr(response, "text", None) or "").strip()
        logger.info(
            "Generative response from %s: %d chars in %.1fs",
            model, len(text), time.perf_counter() - started,
        )
        if not text:
            raise GenerationError("AI analysis did not return any output.")
        return text

    async def generate_structured(
        self,
        *,
        system_instruction: str,
        user_prompt: str,
        response_schema: dict[str, Any],
        output_model: type[ModelT],
    ) -> ModelT:
        text = await self.generate_json(
            system_instruction=system_instruction,
            user_prompt=user_prompt,
            response_schema=response_schema,
        )
        return parse_structured(text, output_model)

    async def generate(self, prompt: ComposedPrompt, ruleset: Ruleset) -> BaseModel:
        """Run one ruleset prompt. Returns an instance of ``ruleset.output_model``."""
        return await self.generate_structured(
            system_instruction=prompt.system_instruction,
            user_prompt=prompt.user_prompt,
            response_schema=ruleset.response_schema,
            output_model=ruleset.output_model,
        )


prediction_generator = PredictionGenerator()
