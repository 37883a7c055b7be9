"""Browser login flow.

1. Build the auth URL (session = hardware id, random state, callback port)
2. Open it in the user's browser
3. Serve the callback app on ``callback_host:callback_port`` with uvicorn
4. Wait for the callback (or ``callback_timeout``) and shut the server down

The callback handler verifies the JWT, runs integrity sampling and writes
the license file; this module only orchestrates.
"""

from __future__ import annotations

import asyncio
import logging
import secrets
import webbrowser
from typing import Callable
from urllib.parse import urlencode

import uvicorn

from esmc.api.main import LoginOutcome, create_callback_app
from esmc.ontology.types import LicenseData
from esmc.services.hardware import get_hardware_id
from esmc.services.jwt_validator import TokenValidator
from esmc.services.license import LicenseManager
from esmc.settings import Settings, get_settings

logger = logging.getLogger(__name__)


class LoginError(RuntimeError):
    """Authentication did not complete."""


def build_auth_url(settings: Settings, hardware_id: str, state: str) -> str:
    query = urlencode({
        "session": hardware_id,
        "state": state,
        "port": settings.callback_port,
        "hardwareId": hardware_id,
    })
    return f"{settings.auth_url}?{query}"


class LoginFlow:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        validator: TokenValidator | None = None,
        licenses: LicenseManager | None = None,
        open_browser: Callable[[str], bool] = webbrowser.open,
        hardware_id: Callable[[], str] = get_hardware_id,
    ):
        self.settings = settings or get_settings()
        self.validator = validator or TokenValidator(self.settings)
        self.licenses = licenses or LicenseManager(self.settings)
        self.open_browser = open_browser
        self._hardware_id = hardware_id
        self.auth_url: str | None = None

    async def run(self) -> LicenseData:
        outcome = LoginOutcome()
        app = create_callback_app(
            self.settings, validator=self.validator, licenses=self.licenses, outcome=outcome
        )
        server = uvicorn.Server(uvicorn.Config(
            app,
            host=self.settings.callback_host,
            port=self.settings.callback_port,
            log_level="warning",
        ))
        serve_task = asyncio.create_task(server.serve())

        self.auth_url = build_auth_url(self.settings, self._hardware_id(), secrets.token_hex(16))
        logger.info("Opening browser for authentication: %s", self.auth_url)
        if not self.open_browser(self.auth_url):
            logger.warning("Could not open a browser; visit the URL manually")

        try:
            await asyncio.wait_for(outcome.done.wait(), timeout=self.settings.callback_timeout)
        except asyncio.TimeoutError as e:
            raise LoginError(
                f"Authentication timed out after {self.settings.callback_timeout}s"
            ) from e
        finally:
            server.should_exit = True
            await serve_task

        if outcome.error:
            raise LoginError(outcome.error)
        if outcome.license is None:
            raise LoginError("Callback finished without a license")
        return outcome.license
