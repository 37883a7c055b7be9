"""JWT signature validation against the auth server's JWKS.

Tokens are only accepted when signed with RS256 or ES256 by the key
published at ``settings.jwks_url``. This rules out ``alg: none``, HMAC
tokens signed with a guessed secret, and self-signed tokens claiming a
higher tier.

Claims checked after the signature:
  exp — must not be in the past
  nbf — must not be in the future
  iss — if present, must equal ``settings.jwt_issuer``
  aud — if present, must equal ``settings.jwt_audience``

All failures raise ``jwt.InvalidTokenError`` subclasses, as the rest of the
auth code does. JWKS retrieval failures raise :class:`JWKSError`.
"""

from __future__ import annotations

import json
import logging
import time
from typing import Any

import httpx
import jwt
from cryptography.hazmat.primitives import serialization
from jwt.algorithms import RSAAlgorithm

from esmc.ontology.types import UserData
from esmc.settings import Settings, get_settings

logger = logging.getLogger(__name__)

ALLOWED_ALGORITHMS = ("RS256", "ES256")
MAX_REDIRECTS = 5


class JWKSError(RuntimeError):
    """The JWKS endpoint could not be fetched or parsed."""


def jwk_to_pem(jwk: dict[str, Any]) -> str:
    """Convert an RSA JWK (``n``/``e``) to a PEM SubjectPublicKeyInfo string."""
    if not jwk.get("n") or not jwk.get("e"):
        raise JWKSError("Invalid JWK: missing n or e")
    public_key = RSAAlgorithm.from_jwk(json.dumps({"kty": "RSA", "n": jwk["n"], "e": jwk["e"]}))
    pem = public_key.public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    )
    return pem.decode("ascii")


class JWKSClient:
    """Fetches and caches the first RSA key of a JWKS document."""

    def __init__(
        self,
        url: str,
        *,
        cache_ttl: int = 3600,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url
        self.cache_ttl = cache_ttl
        self.timeout = timeout
        self._transport = transport
        self._cached_key: str | None = None
        self._cache_expiry = 0.0

    def clear_cache(self) -> None:
        self._cached_key = None
        self._cache_expiry = 0.0

    async def get_public_key(self) -> str:
        if self._cached_key and time.time() < self._cache_expiry:
            return self._cached_key

        try:
            async with httpx.AsyncClient(
                follow_redirects=True,
                max_redirects=MAX_REDIRECTS,
                timeout=self.timeout,
                transport=self._transport,
            ) as client:
                resp = await client.get(self.url)
        except httpx.TooManyRedirects as e:
            raise JWKSError("Too many redirects") from e
        except httpx.TimeoutException as e:
            raise JWKSError(f"JWKS fetch timeout after {self.timeout:g} seconds") from e
        except httpx.HTTPError as e:
            raise JWKSError(f"Failed to fetch JWKS: {e}") from e

        if resp.status_code != 200:
            raise JWKSError(f"JWKS endpoint returned {resp.status_code}")

        try:
            keys = resp.json().get("keys") or []
        except ValueError as e:
            raise JWKSError(f"Failed to parse JWKS: {e}") from e
        if not keys:
            raise JWKSError("No keys found in JWKS response")

        key = keys[0]
        if key.get("kty") != "RSA":
            raise JWKSError(f"Unsupported key type: {key.get('kty')}")

        pem = jwk_to_pem(key)
        self._cached_key = pem
        self._cache_expiry = time.time() + self.cache_ttl
        logger.debug("JWKS key cached for %ss", self.cache_ttl)
        return pem


class TokenValidator:
    def __init__(self, settings: Settings | None = None, *, jwks: JWKSClient | None = None):
        self.settings = settings or get_settings()
        self.jwks = jwks or JWKSClient(
            self.settings.jwks_url,
            cache_ttl=self.settings.jwks_cache_ttl,
            timeout=self.settings.http_timeout,
        )

    async def verify(self, token: str, public_key: str | None = None) -> dict:
        """Verify signature and claims, returning the payload."""
        if not token or not isinstance(token, str):
            raise jwt.DecodeError("Invalid token format")
        if token.count(".") != 2:
            raise jwt.DecodeError("Malformed JWT token (expected 3 parts)")

        try:
            header = jwt.get_unverified_header(token)
        except jwt.DecodeError as e:
            raise jwt.DecodeError("Invalid JWT header encoding") from e

        alg = header.get("alg")
        if alg not in ALLOWED_ALGORITHMS:
            raise jwt.InvalidAlgorithmError(
                f"Unsupported/insecure algorithm: {alg} (only RS256/ES256 allowed)"
            )

        if public_key is None:
            public_key = await self.jwks.get_public_key()

        try:
            payload = jwt.decode(
                token,
                public_key,
                algorithms=[alg],
                options={"verify_aud": False, "verify_iss": False},
            )
        except jwt.InvalidSignatureError as e:
            raise jwt.InvalidSignatureError(
                "JWT signature verification failed - token may be forged"
            ) from e
        except (jwt.DecodeError, jwt.InvalidKeyError) as e:
            raise jwt.DecodeError(f"Signature verification failed: {e}") from e

        iss = payload.get("iss")
        if iss and iss != self.settings.jwt_issuer:
            raise jwt.InvalidIssuerError(f"Invalid issuer: {iss} (expected {self.settings.jwt_issuer})")

        aud = payload.get("aud")
        if aud and aud != self.settings.jwt_audience:
            raise jwt.InvalidAudienceError(
                f"Invalid audience: {aud} (expected {self.settings.jwt_audience})"
            )

        return payload

    async def verify_and_extract_user_data(self, token: str) -> UserData:
        payload = await self.verify(token)
        return user_data_from_payload(payload)

    def is_dev_mode(self) -> bool:
        return self.settings.dev_mode and self.settings.environment != "production"

    async def verify_token_safe(self, token: str) -> dict:
        """Full verification, except in dev mode where the payload is only decoded."""
        if not self.is_dev_mode():
            return await self.verify(token)

        logger.warning("DEV MODE: JWT signature validation disabled! Never enable this in production")
        try:
            return jwt.decode(token, options={"verify_signature": False})
        except jwt.DecodeError as e:
            raise jwt.DecodeError("Invalid JWT format (even in dev mode)") from e


def user_data_from_payload(payload: dict) -> UserData:
    email = payload.get("email") or "unknown@esmc-sdk.com"
    return UserData(
        email=email,
        user_id=payload.get("sub") or payload.get("userId"),
        tier=payload.get("tier") or "FREE",
        name=payload.get("name") or email.split("@")[0],
        exp=payload.get("exp"),
        iat=payload.get("iat"),
        issuer=payload.get("iss"),
        hardware_id=payload.get("hardwareId"),
        subscription_end_date=payload.get("subscriptionEndDate"),
    )
