"""FastAPI application for the one-shot login callback."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from fastapi import FastAPI

from esmc.api.routers.callback import router as callback_router
from esmc.ontology.types import LicenseData
from esmc.services.jwt_validator import TokenValidator
from esmc.services.license import LicenseManager
from esmc.settings import Settings, get_settings


@dataclass
class LoginOutcome:
    """Result slot shared between the callback handler and the waiting login flow."""

    done: asyncio.Event = field(default_factory=asyncio.Event)
    license: LicenseData | None = None
    error: str | None = None

    def succeed(self, license_data: LicenseData) -> None:
        self.license = license_data
        self.done.set()

    def fail(self, error: str) -> None:
        self.error = error
        self.done.set()


def create_callback_app(
    settings: Settings | None = None,
    *,
    validator: TokenValidator | None = None,
    licenses: LicenseManager | None = None,
    outcome: LoginOutcome | None = None,
) -> FastAPI:
    settings = settings or get_settings()
    app = FastAPI(title="esmc-login-callback", docs_url=None, redoc_url=None, openapi_url=None)
    app.state.settings = settings
    app.state.validator = validator or TokenValidator(settings)
    app.state.licenses = licenses or LicenseManager(settings)
    app.state.outcome = outcome or LoginOutcome()
    app.include_router(callback_router)
    return app
