"""Shared helpers for unit tests — signing keys, tokens, mock transports."""

from __future__ import annotations

import json
import time
from functools import lru_cache

import httpx
import jwt
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from jwt.algorithms import RSAAlgorithm

ISSUER = "esmc-sdk.com"
AUDIENCE = "esmc-client"


@lru_cache(maxsize=None)
def rsa_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@lru_cache(maxsize=None)
def other_rsa_private_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def public_pem(private_key=None) -> str:
    key = private_key or rsa_private_key()
    return key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")


def public_jwk(private_key=None) -> dict:
    key = private_key or rsa_private_key()
    return json.loads(RSAAlgorithm.to_jwk(key.public_key()))


def make_token(private_key=None, algorithm: str = "RS256", **claims) -> str:
    """Sign a token with sensible defaults; pass ``exp=None`` to drop a claim."""
    now = int(time.time())
    payload = {
        "sub": "user-123",
        "email": "ada@example.com",
        "name": "Ada Lovelace",
        "tier": "PRO",
        "iss": ISSUER,
        "aud": AUDIENCE,
        "iat": now,
        "exp": now + 3600,
        "hardwareId": "composite-device-1",
    }
    payload.update(claims)
    payload = {k: v for k, v in payload.items() if v is not None}
    return jwt.encode(payload, private_key or rsa_private_key(), algorithm=algorithm)


def make_es256_token(**claims) -> tuple[str, str]:
    """ES256 token plus the matching PEM public key."""
    key = ec.generate_private_key(ec.SECP256R1())
    pem = key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode("ascii")
    return make_token(key, algorithm="ES256", **claims), pem


def jwks_transport(status: int = 200, body: dict | None = None, calls: list | None = None) -> httpx.MockTransport:
    """MockTransport serving a JWKS document with the default test key."""
    document = body if body is not None else {"keys": [public_jwk()]}

    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        return httpx.Response(status, json=document)

    return httpx.MockTransport(handler)


def json_transport(payload: dict, status: int = 200, calls: list | None = None) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        if calls is not None:
            calls.append(request)
        return httpx.Response(status, json=payload)

    return httpx.MockTransport(handler)


def failing_transport(exc: Exception) -> httpx.MockTransport:
    def handler(request: httpx.Request) -> httpx.Response:
        raise exc

    return httpx.MockTransport(handler)
