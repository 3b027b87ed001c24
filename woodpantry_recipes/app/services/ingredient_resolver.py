import logging
import uuid
from abc import ABC, abstractmethod
from typing import Optional

import httpx

from woodpantry_recipes.app.core.config import Settings
from woodpantry_recipes.app.core.errors import ResolutionError


class IngredientResolver(ABC):
    @abstractmethod
    async def resolve(self, name: str) -> str:  # pragma: no cover - interface
        raise NotImplementedError


class DictionaryResolver(IngredientResolver):
    """Maps a free-text ingredient name to the dictionary's canonical id.

    Both "found" and "created" answers count as success. No retries happen
    here; callers decide what a failure means for them.
    """

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self._transport = transport
        self._logger = logger or logging.getLogger(__name__)

    async def resolve(self, name: str) -> str:
        timeout = httpx.Timeout(self.timeout_seconds, connect=min(self.timeout_seconds, 5.0))
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                resp = await client.post(f"{self.base_url}/ingredients/resolve", json={"name": name})
        except httpx.HTTPError as exc:
            raise ResolutionError(f"resolve request for {name!r} failed: {exc}") from exc

        if not resp.is_success:
            raise ResolutionError(f"resolve for {name!r} returned status {resp.status_code}")

        try:
            data = resp.json()
            raw_id = data["ingredient"]["id"]
        except (ValueError, KeyError, TypeError) as exc:
            raise ResolutionError(f"malformed resolve response for {name!r}") from exc

        try:
            ingredient_id = uuid.UUID(str(raw_id))
        except ValueError as exc:
            raise ResolutionError(f"resolve for {name!r} returned invalid id {raw_id!r}") from exc

        self._logger.debug("resolved ingredient name=%r id=%s", name, ingredient_id)
        return str(ingredient_id)


def build_resolver(settings: Settings) -> Optional[IngredientResolver]:
    if not settings.dictionary_url:
        return None
    return DictionaryResolver(settings.dictionary_url, timeout_seconds=settings.dictionary_timeout_seconds)
