"""Tier manager — resolve the active subscription tier and gate features.

Resolution order in :meth:`TierManager.initialize`:
  1. No stored credentials          → FREE (source=default)
  2. Backend accepts token+hardware → server tier (source=backend)
  3. Backend unreachable/rejects and local credentials expired
                                    → clear credentials, FREE (source=expired)
  4. Otherwise                      → stored tier, offline (source=local)

The brain module for a tier is identified purely by content hash: the brain
directory holds many decoy files and only the one whose SHA-256 matches the
configured checksum is loaded.
"""

from __future__ import annotations

import importlib.util
import logging
from pathlib import Path
from types import ModuleType
from typing import Callable

import httpx
from pydantic import ValidationError

from esmc.ontology.types import (
    TIER_FEATURES,
    BackendUser,
    Credentials,
    Tier,
    TierFeatures,
    TierStatus,
)
from esmc.services.credentials import CredentialStore, is_expired
from esmc.services.hardware import get_hardware_id
from esmc.services.license import find_project_root
from esmc.settings import Settings, get_settings
from esmc.utils.hashing import file_sha256

logger = logging.getLogger(__name__)

BRAIN_SUFFIX = ".py"


class TierManager:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        store: CredentialStore | None = None,
        hardware_id: Callable[[], str] = get_hardware_id,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or get_settings()
        self.store = store or CredentialStore(settings=self.settings)
        self._hardware_id = hardware_id
        self._transport = transport
        self.current_tier = Tier.FREE
        self.features: TierFeatures = TIER_FEATURES[Tier.FREE]
        self.credentials: Credentials | None = None
        self.brain_path: Path | None = None

    def _set_tier(self, tier: Tier | str | None) -> None:
        self.current_tier = Tier.parse(tier)
        self.features = TIER_FEATURES[self.current_tier]

    async def validate_with_backend(self, token: str, hardware_id: str) -> dict | None:
        """POST the token to the backend. Returns user info, or None to fall back locally."""
        url = f"{self.settings.api_url.rstrip('/')}/esmc/mcp/validate"
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.http_timeout, transport=self._transport
            ) as client:
                resp = await client.post(url, json={"token": token, "hardwareId": hardware_id})
            data = resp.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Backend validation failed: %s", e)
            return None

        if not resp.is_success or not isinstance(data, dict) or not data.get("valid"):
            return None

        try:
            user = BackendUser.model_validate(data.get("user") or {})
        except ValidationError as e:
            logger.error("Backend returned malformed user data: %s", e)
            return None
        return {
            "tier": user.tier,
            "email": user.email,
            "name": user.name,
            "expires_at": user.expires_at,
        }

    async def initialize(self) -> TierStatus:
        self.credentials = self.store.load()

        if self.credentials is None:
            self._set_tier(Tier.FREE)
            return TierStatus(
                tier=Tier.FREE,
                source="default",
                authenticated=False,
                message="Not logged in - using FREE tier",
            )

        backend = await self.validate_with_backend(self.credentials.token, self._hardware_id())
        if backend:
            self._set_tier(backend["tier"])
            return TierStatus(
                tier=self.current_tier,
                source="backend",
                authenticated=True,
                email=backend["email"],
                name=backend["name"],
                expires_at=backend["expires_at"],
            )

        if is_expired(self.credentials):
            logger.warning("Subscription expired - cleaning up credentials")
            self.store.clear()
            self.credentials = None
            self._set_tier(Tier.FREE)
            return TierStatus(
                tier=Tier.FREE,
                source="expired",
                authenticated=False,
                message="Subscription expired - reverted to FREE tier",
            )

        self._set_tier(self.credentials.tier)
        return TierStatus(
            tier=self.current_tier,
            source="local",
            authenticated=True,
            email=self.credentials.email,
            name=self.credentials.name,
            expires_at=self.credentials.expires_at,
        )

    # -----------------------------------------------------------------------
    # Feature gates
    # -----------------------------------------------------------------------

    @property
    def tier(self) -> Tier:
        return self.current_tier

    def is_intelligence_enabled(self, component: str) -> bool:
        return component in self.features.intelligence

    def is_colonel_enabled(self, colonel: str) -> bool:
        return colonel in self.features.colonels

    def is_module_enabled(self, module: str) -> bool:
        return module in self.features.modules

    def get_available_colonels(self, required: list[str]) -> list[str]:
        return [c for c in required if self.is_colonel_enabled(c)]

    def get_memory_type(self) -> str:
        return self.features.memory

    def validate_access(self, required_tier: Tier | str) -> bool:
        """True when the current tier is at or above ``required_tier``."""
        return self.current_tier.level >= Tier.parse(required_tier).level

    def get_user_info(self) -> dict | None:
        if self.credentials is None:
            return None
        return {
            "email": self.credentials.email,
            "name": self.credentials.name,
            "tier": self.current_tier,
            "expires_at": self.credentials.expires_at,
        }

    def is_max_or_vip(self) -> bool:
        return self.current_tier in (Tier.MAX, Tier.VIP)

    def is_mysql_enabled(self) -> bool:
        return self.is_max_or_vip()

    # -----------------------------------------------------------------------
    # Brain discovery
    # -----------------------------------------------------------------------

    @property
    def brain_dir(self) -> Path:
        if self.settings.brain_dir:
            return Path(self.settings.brain_dir)
        root = Path(self.settings.project_root) if self.settings.project_root else find_project_root()
        return root / ".claude" / "ESMC Complete" / "core" / "brain"

    def brain_checksum(self, tier: Tier) -> str | None:
        return {
            Tier.FREE: self.settings.brain_checksum_free,
            Tier.PRO: self.settings.brain_checksum_pro,
            Tier.MAX: self.settings.brain_checksum_max,
        }.get(tier) or None

    def discover_brain_file(self) -> Path:
        """Find the brain file whose SHA-256 matches the current tier's checksum."""
        if self.brain_path is not None:
            return self.brain_path

        target = self.brain_checksum(self.current_tier)
        if not target:
            raise KeyError(f"No brain checksum defined for tier: {self.current_tier.value}")

        files = sorted(self.brain_dir.iterdir())
        logger.info("Searching %d brain files for %s tier", len(files), self.current_tier.value)
        for path in files:
            if path.suffix != BRAIN_SUFFIX or not path.is_file():
                continue
            if file_sha256(path) == target:
                self.brain_path = path
                logger.info("Real brain discovered: %s (%s tier)", path.name, self.current_tier.value)
                return path

        raise FileNotFoundError(
            f"Brain file not found for {self.current_tier.value} tier (scanned {len(files)} files)"
        )

    def load_brain(self) -> ModuleType:
        path = self.discover_brain_file()
        spec = importlib.util.spec_from_file_location(f"esmc_brain_{self.current_tier.value.lower()}", path)
        if spec is None or spec.loader is None:
            raise ImportError(f"Cannot load brain module from {path}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        logger.info("Brain loaded successfully (%s tier)", self.current_tier.value)
        return module
