from __future__ import annotations

import base64
import json
from typing import Any, Dict

import pytest
from fastapi import HTTPException

from deluxe.auth import deps


@pytest.fixture
def dev_auth(settings):
    settings(cognito_user_pool_id="", cognito_app_client_id="")


@pytest.fixture
def cognito(settings):
    settings(cognito_user_pool_id="pool", cognito_app_client_id="client", cognito_region="us-east-1")


def test_dev_fallback_prefers_x_user_sub(dev_auth, build_request, run):
    req = build_request(method="GET", headers={"x-user-sub": "user-123", "authorization": "Bearer other"})
    assert run(deps.require_user(req)) == {"user_id": "user-123"}


def test_dev_fallback_accepts_plain_bearer(dev_auth, build_request, run):
    req = build_request(method="GET", headers={"authorization": "Bearer user-1"})
    assert run(deps.require_user(req)) == {"user_id": "user-1"}


def test_dev_fallback_reads_jwt_sub(dev_auth, build_request, run):
    header = base64.urlsafe_b64encode(json.dumps({"alg": "none"}).encode()).decode().rstrip("=")
    payload = base64.urlsafe_b64encode(json.dumps({"sub": "jwt-user"}).encode()).decode().rstrip("=")
    req = build_request(method="GET", headers={"authorization": f"Bearer {header}.{payload}."})
    assert run(deps.require_user(req)) == {"user_id": "jwt-user"}


@pytest.mark.parametrize("headers", [{}, {"authorization": "Token abc"}, {"authorization": "Bearer "}])
def test_dev_fallback_rejects_missing_or_bad_header(dev_auth, build_request, run, headers):
    with pytest.raises(HTTPException) as exc:
        run(deps.require_user(build_request(method="GET", headers=headers)))
    assert exc.value.status_code == 401


def test_cognito_requires_bearer(cognito, build_request, run):
    with pytest.raises(HTTPException) as exc:
        run(deps.require_user(build_request(method="GET", headers={"x-user-sub": "spoofed"})))
    assert exc.value.status_code == 401


def test_cognito_claims_resolve_user(cognito, build_request, run, monkeypatch):
    def fake_verify(token: str) -> Dict[str, Any]:
        assert token == "token123"
        return {"sub": "user-abc"}

    monkeypatch.setattr(deps, "verify_cognito_token", fake_verify)
    req = build_request(method="GET", headers={"authorization": "Bearer token123"})
    assert run(deps.require_user(req)) == {"user_id": "user-abc"}


def test_cognito_token_without_subject(cognito, build_request, run, monkeypatch):
    monkeypatch.setattr(deps, "verify_cognito_token", lambda token: {})
    with pytest.raises(HTTPException) as exc:
        run(deps.require_user(build_request(method="GET", headers={"authorization": "Bearer token123"})))
    assert exc.value.status_code == 401
