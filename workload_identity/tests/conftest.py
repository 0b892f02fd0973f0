"""
Pytest fixtures for workload_identity.
The token endpoint is a small FastAPI app served in-process through httpx.ASGITransport,
so exchange tests never touch the network.
"""
import asyncio
import json
import time

import httpx
import jwt
import pytest
import pytest_asyncio
from fastapi import FastAPI, Form
from fastapi.responses import JSONResponse

from workload_identity.config import (
    AZURE_AUTHORITY_HOST,
    AZURE_CLIENT_ID,
    AZURE_FEDERATED_TOKEN,
    AZURE_FEDERATED_TOKEN_FILE,
    AZURE_TENANT_ID,
    AZURE_TOKEN_REFRESH_MARGIN_SECONDS,
    AZURE_TOKEN_REQUEST_TIMEOUT_SECONDS,
)
from workload_identity.exchange import CLIENT_ASSERTION_TYPE


def _b64url_json(obj) -> str:
    s = jwt.utils.base64url_encode(json.dumps(obj).encode("utf-8"))
    return s.decode("ascii") if isinstance(s, bytes) else s


def _make_jwt(claims, header: dict | None = None) -> str:
    """Unsigned compact JWT; the signature segment is a placeholder."""
    header = header or {"alg": "RS256", "typ": "JWT"}
    return f"{_b64url_json(header)}.{_b64url_json(claims)}.sig"


@pytest.fixture
def make_jwt():
    return _make_jwt


@pytest.fixture
def future_exp() -> int:
    return int(time.time()) + 3600


@pytest.fixture
def past_exp() -> int:
    return int(time.time()) - 60


@pytest.fixture(autouse=True)
def clean_azure_env(monkeypatch):
    """Keep the host's workload identity variables out of every test."""
    for name in (
        AZURE_TENANT_ID,
        AZURE_CLIENT_ID,
        AZURE_FEDERATED_TOKEN,
        AZURE_FEDERATED_TOKEN_FILE,
        AZURE_AUTHORITY_HOST,
        AZURE_TOKEN_REFRESH_MARGIN_SECONDS,
        AZURE_TOKEN_REQUEST_TIMEOUT_SECONDS,
    ):
        monkeypatch.delenv(name, raising=False)


class StubTokenEndpoint:
    """
    Stand-in for the identity platform token endpoint.
    Records every request and answers with access_token/expires_in, or with an OAuth error body
    when error is set.
    """

    def __init__(self):
        self.requests: list[dict] = []
        self.access_tokens: list[str] = []
        self.access_token = "AT1"
        self.expires_in: int | str = 3600
        self.delay = 0.0
        self.status_code = 200
        self.error: dict | None = None
        self.app = self._build_app()

    @property
    def calls(self) -> int:
        return len(self.requests)

    def _build_app(self) -> FastAPI:
        app = FastAPI(title="Stub token endpoint")

        @app.post("/{tenant_id}/oauth2/v2.0/token")
        async def token(
            tenant_id: str,
            grant_type: str = Form(...),
            client_id: str = Form(...),
            scope: str = Form(...),
            client_assertion_type: str = Form(...),
            client_assertion: str = Form(...),
        ):
            self.requests.append(
                {
                    "tenant_id": tenant_id,
                    "grant_type": grant_type,
                    "client_id": client_id,
                    "scope": scope,
                    "client_assertion_type": client_assertion_type,
                    "client_assertion": client_assertion,
                }
            )
            if self.delay:
                await asyncio.sleep(self.delay)
            if self.error is not None:
                return JSONResponse(status_code=self.status_code, content=self.error)
            if client_assertion_type != CLIENT_ASSERTION_TYPE:
                return JSONResponse(
                    status_code=400,
                    content={"error": "invalid_request", "error_description": "bad client_assertion_type"},
                )
            value = self.access_token
            if self.access_tokens:
                value = self.access_tokens.pop(0)
            return {"token_type": "Bearer", "expires_in": self.expires_in, "access_token": value}

        return app


@pytest.fixture
def token_endpoint() -> StubTokenEndpoint:
    return StubTokenEndpoint()


@pytest_asyncio.fixture
async def http_client(token_endpoint):
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=token_endpoint.app)) as client:
        yield client
