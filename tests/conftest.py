"""Shared fixtures for SpecRun tests.

Description documents are written to a temporary specs directory and
HTTP traffic goes through an httpx.MockTransport, so no test touches
the network.
"""

from __future__ import annotations

import copy
import json
import os
from pathlib import Path
from typing import Any

import httpx
import pytest

from specrun.http_client import HttpClient


# ---------------------------------------------------------------------------
# Environment isolation: .env loading writes into os.environ
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _restore_environ():
    """Put os.environ back exactly as it was after every test."""
    saved = dict(os.environ)
    yield
    os.environ.clear()
    os.environ.update(saved)


# ---------------------------------------------------------------------------
# Description documents
# ---------------------------------------------------------------------------

CARS_DOC: dict[str, Any] = {
    "openapi": "3.0.3",
    "info": {"title": "Cars", "version": "1.0.0"},
    "servers": [{"url": "https://api.cars.test/v1"}],
    "paths": {
        "/cars": {
            "get": {
                "operationId": "listCars",
                "summary": "List cars",
                "parameters": [
                    {"name": "limit", "in": "query", "schema": {"type": "integer"}},
                    {
                        "name": "tags",
                        "in": "query",
                        "schema": {"type": "array", "items": {"type": "string"}},
                    },
                    {"name": "X-Trace-Id", "in": "header", "schema": {"type": "string"}},
                ],
            },
            "post": {
                "operationId": "addCar",
                "summary": "Add a car",
            },
        },
        "/cars/{carId}": {
            "parameters": [
                {"$ref": "#/components/parameters/CarId"},
            ],
            "get": {
                "operationId": "getCar",
                "description": "Fetch one car by id.",
            },
            "put": {
                "operationId": "updateCar",
                "requestBody": {
                    "content": {
                        "application/json": {
                            "schema": {"$ref": "#/components/schemas/Car"},
                        }
                    }
                },
            },
            "delete": {},
        },
    },
    "components": {
        "parameters": {
            "CarId": {
                "name": "carId",
                "in": "path",
                "required": False,
                "schema": {"type": "string"},
                "description": "Car identifier",
            },
        },
        "schemas": {
            "Car": {
                "type": "object",
                "properties": {
                    "name": {"type": "string"},
                    "year": {"type": "integer"},
                },
                "required": ["name"],
            },
        },
    },
}

PETSTORE_SWAGGER_DOC: dict[str, Any] = {
    "swagger": "2.0",
    "info": {"title": "Petstore", "version": "1.0.0"},
    "host": "petstore.test",
    "basePath": "/api",
    "schemes": ["http"],
    "paths": {
        "/pets": {
            "post": {
                "parameters": [
                    {
                        "name": "pet",
                        "in": "body",
                        "required": True,
                        "schema": {"type": "object", "properties": {"name": {"type": "string"}}},
                    },
                ],
            },
        },
        "/pets/{petId}": {
            "get": {
                "parameters": [
                    {"name": "petId", "in": "path", "type": "integer", "format": "int64"},
                ],
            },
        },
    },
}


@pytest.fixture
def cars_doc() -> dict[str, Any]:
    return copy.deepcopy(CARS_DOC)


@pytest.fixture
def swagger_doc() -> dict[str, Any]:
    return copy.deepcopy(PETSTORE_SWAGGER_DOC)


def _write_json(path: Path, document: dict[str, Any]) -> Path:
    path.write_text(json.dumps(document, indent=2), encoding="utf-8")
    return path


@pytest.fixture
def write_json():
    """Write a document to a JSON file and return its path."""
    return _write_json


@pytest.fixture
def specs_dir(tmp_path: Path) -> Path:
    """A specs directory holding cars.json and petstore-swagger.json."""
    directory = tmp_path / "specs"
    directory.mkdir()
    _write_json(directory / "cars.json", CARS_DOC)
    _write_json(directory / "petstore-swagger.json", PETSTORE_SWAGGER_DOC)
    return directory


# ---------------------------------------------------------------------------
# HTTP transport double
# ---------------------------------------------------------------------------

class RecordingTransport(httpx.MockTransport):
    """MockTransport that keeps every request and replies from a callable."""

    def __init__(self, reply=None) -> None:
        self.requests: list[httpx.Request] = []
        self.reply = reply or (lambda request: httpx.Response(200, json={"ok": True}))
        super().__init__(self._handle)

    def _handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.reply(request)


@pytest.fixture
def transport() -> RecordingTransport:
    return RecordingTransport()


@pytest.fixture
def http_client(transport: RecordingTransport) -> HttpClient:
    return HttpClient(transport=transport)


@pytest.fixture
def make_client():
    """Build an HttpClient whose transport answers with ``reply(request)``."""
    def _make(reply) -> tuple[HttpClient, RecordingTransport]:
        recording = RecordingTransport(reply)
        return HttpClient(transport=recording), recording
    return _make
