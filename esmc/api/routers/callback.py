"""Login callback router — receives the token after browser authentication.

The auth server redirects the browser to
``http://localhost:{callback_port}/callback`` with query parameters:

  token     — signed JWT (required)
  session   — echoed session id (informational; the server binds the device
              through the ``hardwareId`` claim instead)
  blessing  — URL-encoded JSON guardian blessing token
  checksum  — URL-encoded JSON rotation checksum
  samples   — URL-encoded JSON list of ``{file, hash}`` integrity samples
  error     — set instead of token when authentication failed

Every outcome is recorded on ``app.state.outcome`` so the waiting login flow
can finish.
"""

from __future__ import annotations

import html
import json
import logging
from pathlib import Path
from urllib.parse import unquote

import jwt
from fastapi import APIRouter, Request, Response
from fastapi.responses import HTMLResponse
from pydantic import BaseModel, ValidationError

from esmc.ontology.types import Blessing, VercelChecksum
from esmc.services.integrity import revoke_license, verify_integrity_samples
from esmc.services.jwt_validator import JWKSError

logger = logging.getLogger(__name__)

router = APIRouter()

_STYLE = (
    "body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif;"
    " text-align: center; padding: 50px; background: #f5f5f5; }"
    " h1 { color: #dc3545; } p { color: #666; }"
)

_SUCCESS_STYLE = (
    "body { font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif;"
    " text-align: center; padding: 50px; color: white;"
    " background: linear-gradient(135deg, #667eea 0%, #764ba2 100%); }"
    " .box { background: rgba(255,255,255,0.1); padding: 30px; border-radius: 10px;"
    " max-width: 500px; margin: 0 auto; }"
)


def _page(title: str, heading: str, paragraphs: list[str], *, status: int, style: str = _STYLE,
          auto_close: bool = False) -> HTMLResponse:
    body = "".join(f"<p>{p}</p>" for p in paragraphs)
    script = "<script>setTimeout(() => window.close(), 3000);</script>" if auto_close else ""
    content = (
        f'<html><head><meta charset="utf-8"><title>{title}</title><style>{style}</style></head>'
        f"<body><div class=\"box\"><h1>{heading}</h1>{body}</div>{script}</body></html>"
    )
    return HTMLResponse(content, status_code=status)


def _parse_json_param(value: str | None, name: str):
    if not value:
        return None
    try:
        return json.loads(unquote(value))
    except ValueError:
        logger.warning("Could not parse %s parameter", name)
        return None


def _parse_model_param(value: str | None, name: str, model: type[BaseModel]):
    data = _parse_json_param(value, name)
    if data is None:
        return None
    try:
        return model.model_validate(data)
    except ValidationError:
        logger.warning("Ignoring malformed %s parameter", name)
        return None


@router.get("/favicon.ico")
async def favicon():
    return Response(status_code=404)


@router.get("/callback")
async def callback(request: Request):
    state = request.app.state
    outcome = state.outcome
    params = request.query_params

    error = params.get("error")
    if error:
        outcome.fail(f"Authentication failed: {error}")
        return _page(
            "ESMC Authentication Failed",
            "Authentication Failed",
            [f"Error: {html.escape(error)}", "You can close this window and try again."],
            status=400,
        )

    token = params.get("token")
    if not token:
        outcome.fail("Missing token")
        return _page(
            "ESMC Authentication Failed",
            "Invalid Authentication Response",
            ["Missing authentication token. Please try again."],
            status=400,
        )

    try:
        user = await state.validator.verify_and_extract_user_data(token)
    except (jwt.InvalidTokenError, JWKSError, ValidationError) as e:
        logger.error("JWT verification failed: %s", e)
        outcome.fail(f"JWT verification failed: {e}")
        return _page(
            "ESMC Authentication Failed",
            "Authentication Failed",
            [
                "JWT signature verification failed.",
                f"Error: {html.escape(str(e))}",
                "This token may be forged or tampered with.",
            ],
            status=403,
        )

    if not user.hardware_id:
        logger.warning("Token carries no composite device id")

    blessing = _parse_model_param(params.get("blessing"), "blessing", Blessing)
    checksum = _parse_model_param(params.get("checksum"), "checksum", VercelChecksum)
    samples = _parse_json_param(params.get("samples"), "samples") or []

    licenses = state.licenses
    if samples:
        result = verify_integrity_samples(samples, roots=[Path.cwd(), licenses.project_root])
        if not result.success and not result.skipped:
            revoke_license([licenses.license_path])
            outcome.fail("SDK integrity validation failed")
            return _page(
                "ESMC Security Alert",
                "SDK Integrity Check Failed",
                [
                    "<strong>SDK integrity validation failed.</strong>",
                    "Your SDK package may have been tampered with or corrupted.",
                    'Please download a fresh copy from <a href="https://esmc-sdk.com">esmc-sdk.com</a>',
                ],
                status=403,
            )

    license_kwargs = dict(
        email=user.email,
        user_id=user.user_id,
        display_name=user.name or "ESMC User",
        tier=user.tier,
        subscription_status="active",
        subscription_end_date=user.subscription_end_date,
        composite_device_id=user.hardware_id,
        blessing=blessing,
        vercel_checksum=checksum,
    )
    try:
        license_data = licenses.write_license_file(**license_kwargs)
    except OSError as e:
        # The user did authenticate; report success and keep the in-memory license.
        logger.error("License file creation failed: %s", e)
        license_data = licenses.create_license_data(**license_kwargs)

    outcome.succeed(license_data)
    first_name = html.escape(license_data.display_name.split(" ")[0])
    return _page(
        "ESMC Authentication Successful",
        "Authentication Successful!",
        [
            f"Welcome to ESMC SDK, {first_name}!",
            f"<strong>Tier:</strong> {license_data.tier.value}",
            "You can close this window and return to your editor.",
        ],
        status=200,
        style=_SUCCESS_STYLE,
        auto_close=True,
    )
