import json
import logging
import re
from typing import Any, Dict, Optional

import httpx
from pydantic import ValidationError

from woodpantry_recipes.app.core.config import Settings
from woodpantry_recipes.app.core.errors import ExtractionError
from woodpantry_recipes.app.schemas.ingestion import StagedRecipe

EXTRACTION_INSTRUCTIONS = (
    "Extract a recipe from the text below. Return ONLY a JSON object, no prose.\n\n"
    'Schema: {"title":string,"description":string|null,"source_url":string|null,'
    '"servings":int|null,"prep_minutes":int|null,"cook_minutes":int|null,"tags":[string],'
    '"steps":[string],"ingredients":[{"name":string,"quantity":number|null,"unit":string|null,'
    '"is_optional":bool,"preparation_notes":string|null}]}\n\n'
    "Rules:\n"
    "- One entry per ingredient: 'salt and pepper' = 2 entries\n"
    "- Move units out of names: '1 cup flour' -> quantity:1, unit:'cup', name:'flour'\n"
    "- Put prep notes like 'chopped' in preparation_notes\n"
    "- Steps are plain instruction strings in order\n"
    "- Use null for anything the text does not state\n"
)


def _strip_invalid_control_chars(s: str) -> str:
    """Remove ASCII control chars that frequently break json.loads (except \\n, \\r, \\t)."""
    return re.sub(r"[\x00-\x08\x0B\x0C\x0E-\x1F]", "", s)


def _strip_code_fence(text: str) -> str:
    txt = text.strip()
    if txt.startswith("```"):
        txt = re.sub(r"^```[a-zA-Z0-9_-]*\s*", "", txt, count=1)
        txt = re.sub(r"\s*```$", "", txt, count=1).strip()
    return txt


def parse_staged_recipe(content: str) -> StagedRecipe:
    """Parse model output into a StagedRecipe; the output must be a single JSON object."""
    cleaned = _strip_code_fence(_strip_invalid_control_chars(content))
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ExtractionError(f"LLM returned malformed JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ExtractionError("LLM response is not a JSON object")
    if isinstance(data.get("recipe"), dict):
        data = data["recipe"]
    try:
        return StagedRecipe.model_validate(data)
    except ValidationError as exc:
        raise ExtractionError(f"LLM output does not match recipe shape: {exc.error_count()} errors") from exc


class LLMExtractor:
    """Calls an OpenAI-compatible chat completions endpoint to structure recipe text."""

    def __init__(
        self,
        base_url: str,
        model_name: str = "full",
        api_key: Optional[str] = None,
        timeout_seconds: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.model_name = model_name
        self.api_key = api_key
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._logger = logger or logging.getLogger(__name__)

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _payload(self, raw_text: str) -> Dict[str, Any]:
        return {
            "model": self.model_name,
            "temperature": 0.0,
            "response_format": {"type": "json_object"},
            "messages": [
                {"role": "system", "content": EXTRACTION_INSTRUCTIONS},
                {"role": "user", "content": f"RECIPE TEXT (verbatim):\n<<<START>>>\n{raw_text}\n<<<END>>>"},
            ],
            "stream": False,
        }

    async def extract(self, raw_text: str) -> StagedRecipe:
        timeout = httpx.Timeout(self.timeout_seconds, read=self.timeout_seconds, connect=10.0)
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                resp = await client.post(
                    f"{self.base_url}/v1/chat/completions",
                    json=self._payload(raw_text),
                    headers=self._headers(),
                )
        except httpx.HTTPError as exc:
            raise ExtractionError(f"LLM request failed: {exc}") from exc

        if not resp.is_success:
            raise ExtractionError(f"LLM returned status {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise ExtractionError("LLM response body is not JSON") from exc

        if isinstance(data, dict) and "error" in data:
            error_info = data["error"] if isinstance(data["error"], dict) else {"message": str(data["error"])}
            self._logger.error(
                "LLM returned error in extraction: type=%s, message=%s",
                error_info.get("type", "unknown_error"),
                str(error_info.get("message", "Unknown error"))[:500],
            )
            raise ExtractionError(f"LLM error: {error_info.get('message', 'Unknown error')}")

        choices = data.get("choices") if isinstance(data, dict) else None
        if not choices:
            raise ExtractionError("LLM returned no choices")
        content = (choices[0].get("message") or {}).get("content")
        if not content:
            raise ExtractionError("LLM returned empty content")

        recipe = parse_staged_recipe(content if isinstance(content, str) else str(content))
        self._logger.info(
            "LLM extraction parsed title=%r steps=%d ingredients=%d",
            recipe.title,
            len(recipe.steps),
            len(recipe.ingredients),
        )
        return recipe


def build_extractor(settings: Settings) -> Optional[LLMExtractor]:
    if not settings.llm_base_url:
        return None
    return LLMExtractor(
        settings.llm_base_url,
        model_name=settings.llm_model_name,
        api_key=settings.llm_api_key,
        timeout_seconds=settings.llm_timeout_seconds,
    )
