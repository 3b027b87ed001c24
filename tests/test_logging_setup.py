import logging

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient

from woodpantry_recipes.app.core.logging_setup import make_request_logger, resolve_level


@pytest.mark.parametrize(
    "name, level",
    [
        ("debug", logging.DEBUG),
        ("INFO", logging.INFO),
        ("warn", logging.WARNING),
        (" error ", logging.ERROR),
        ("verbose", logging.INFO),
        (None, logging.INFO),
    ],
)
def test_resolve_level(name, level):
    assert resolve_level(name) == level


def test_request_logger_skips_health_and_grades_by_status(caplog):
    app = FastAPI()
    app.middleware("http")(make_request_logger(logging.getLogger("test.http")))

    @app.get("/healthz")
    def healthz():
        return {"status": "ok"}

    @app.get("/things/{thing_id}")
    def thing(thing_id: int):
        return {"id": thing_id}

    client = TestClient(app)
    with caplog.at_level(logging.INFO, logger="test.http"):
        client.get("/healthz")
        client.get("/things/1")
        client.get("/things/nope")

    records = [r for r in caplog.records if r.name == "test.http"]
    assert len(records) == 2
    assert records[0].levelno == logging.INFO
    assert "path=/things/1 status=200" in records[0].getMessage()
    assert records[1].levelno == logging.WARNING
    assert "status=422" in records[1].getMessage()
