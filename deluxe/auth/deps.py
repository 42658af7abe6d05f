from __future__ import annotations

import base64
import json
from functools import lru_cache
from typing import Any, Dict, Optional

import jwt
import requests
from fastapi import HTTPException, Request

from deluxe.core.settings import S


def cognito_enabled() -> bool:
    return bool(S.cognito_user_pool_id and S.cognito_app_client_id)


def _issuer() -> str:
    region = S.cognito_region or S.aws_region
    return f"https://cognito-idp.{region}.amazonaws.com/{S.cognito_user_pool_id}"


@lru_cache(maxsize=1)
def _jwks() -> Dict[str, Any]:
    resp = requests.get(f"{_issuer()}/.well-known/jwks.json", timeout=10)
    resp.raise_for_status()
    return resp.json()


def _signing_key(token: str) -> Any:
    try:
        kid = jwt.get_unverified_header(token).get("kid", "")
    except jwt.PyJWTError as exc:
        raise HTTPException(401, "Invalid token header") from exc
    for key in _jwks().get("keys", []):
        if key.get("kid") == kid:
            return jwt.algorithms.RSAAlgorithm.from_jwk(json.dumps(key))
    raise HTTPException(401, "Unknown Cognito key id")


def verify_cognito_token(token: str) -> Dict[str, Any]:
    try:
        claims = jwt.decode(
            token,
            _signing_key(token),
            algorithms=["RS256"],
            audience=S.cognito_app_client_id,
            issuer=_issuer(),
        )
    except jwt.ExpiredSignatureError as exc:
        raise HTTPException(401, "Token expired") from exc
    except jwt.PyJWTError as exc:
        raise HTTPException(401, "Invalid token") from exc

    if S.cognito_expected_token_use and claims.get("token_use") != S.cognito_expected_token_use:
        raise HTTPException(401, "Unexpected token use")
    return claims


def unverified_sub(token: str) -> Optional[str]:
    """``sub`` claim of a JWT-shaped token without checking its signature (dev only)."""
    if token.count(".") != 2:
        return None
    payload = token.split(".")[1]
    if not payload:
        return None
    try:
        data = json.loads(base64.urlsafe_b64decode(payload + "=" * (-len(payload) % 4)).decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return None
    sub = data.get("sub") if isinstance(data, dict) else None
    return sub if isinstance(sub, str) and sub.strip() else None


def bearer_token(auth_header: Optional[str]) -> str:
    if not auth_header:
        raise HTTPException(401, "Missing Authorization header")
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        raise HTTPException(401, "Invalid Authorization header")
    return token.strip()


async def require_user(request: Request) -> Dict[str, str]:
    """Resolve the calling user.

    With Cognito configured the bearer token must verify. Otherwise the dev
    fallback trusts ``X-User-Sub`` or ``Authorization: Bearer <user id>``.
    """
    if cognito_enabled():
        claims = verify_cognito_token(bearer_token(request.headers.get("authorization")))
        user_id = claims.get("sub") or claims.get("cognito:username") or claims.get("username")
        if not user_id:
            raise HTTPException(401, "Token missing subject")
        return {"user_id": str(user_id)}

    header_user = (request.headers.get("x-user-sub") or "").strip()
    if header_user:
        return {"user_id": header_user}

    token = bearer_token(request.headers.get("authorization"))
    return {"user_id": unverified_sub(token) or token}
