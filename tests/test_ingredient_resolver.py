import json
import uuid

import httpx
import pytest

from woodpantry_recipes.app.core.config import Settings
from woodpantry_recipes.app.core.errors import ResolutionError
from woodpantry_recipes.app.services.ingredient_resolver import DictionaryResolver, build_resolver

INGREDIENT_ID = "3f1c6a52-8d0b-4c55-9a8e-6f2d1e0b7a11"


def make_transport(status=200, body=None, seen=None):
    async def handler(request: httpx.Request) -> httpx.Response:
        if seen is not None:
            seen.append(request)
        if isinstance(body, (dict, list)):
            return httpx.Response(status, json=body)
        return httpx.Response(status, content=body or b"")

    return httpx.MockTransport(handler)


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [200, 201])
async def test_found_and_created_both_resolve(status):
    seen = []
    resolver = DictionaryResolver(
        "http://dictionary:8080/",
        transport=make_transport(status, {"ingredient": {"id": INGREDIENT_ID, "name": "garlic"}}, seen),
    )
    assert await resolver.resolve("garlic") == INGREDIENT_ID
    assert str(seen[0].url) == "http://dictionary:8080/ingredients/resolve"
    assert seen[0].method == "POST"
    assert json.loads(seen[0].content) == {"name": "garlic"}


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [400, 404, 500, 503])
async def test_non_success_status_fails(status):
    resolver = DictionaryResolver("http://dictionary", transport=make_transport(status, {"error": "nope"}))
    with pytest.raises(ResolutionError):
        await resolver.resolve("garlic")


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        b"not json",
        {"ingredient": {}},
        {"id": INGREDIENT_ID},
        {"ingredient": {"id": "garlic-1"}},
        {"ingredient": {"id": None}},
    ],
)
async def test_malformed_body_or_id_fails(body):
    resolver = DictionaryResolver("http://dictionary", transport=make_transport(200, body))
    with pytest.raises(ResolutionError):
        await resolver.resolve("garlic")


@pytest.mark.asyncio
async def test_transport_error_fails():
    async def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    resolver = DictionaryResolver("http://dictionary", transport=httpx.MockTransport(handler))
    with pytest.raises(ResolutionError):
        await resolver.resolve("garlic")


@pytest.mark.asyncio
async def test_resolved_id_is_normalized():
    upper = INGREDIENT_ID.upper()
    resolver = DictionaryResolver("http://dictionary", transport=make_transport(200, {"ingredient": {"id": upper}}))
    assert await resolver.resolve("garlic") == str(uuid.UUID(upper))


def test_no_dictionary_url_means_no_resolver():
    assert build_resolver(Settings(_env_file=None, DICTIONARY_URL=None)) is None
    resolver = build_resolver(Settings(_env_file=None, DICTIONARY_URL="http://dictionary:8080"))
    assert isinstance(resolver, DictionaryResolver)
    assert resolver.base_url == "http://dictionary:8080"
