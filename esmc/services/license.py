"""License manager — plaintext license file I/O and validation layers.

The license lives at a fixed location so quick-check tooling can find it
without decrypting anything::

    {project_root}/.claude/.esmc-license.json

Project root resolution (first match wins):
  1. ``settings.project_root`` when set
  2. nearest ancestor containing ``.claude/memory/``
  3. nearest ancestor containing ``.claude/`` (``memory/`` is created)
  4. the current working directory (``.claude/memory/`` is created)

Tamper protection is layered on top of the plaintext file: the guardian
blessing token (structure + expiry, signature checked server-side) and the
rotating checksum validated against the auth server.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path

import httpx

from esmc.ontology.types import (
    DEFAULT_MAX_DEVICES,
    MAX_DEVICES,
    Blessing,
    Credentials,
    LicenseData,
    LicenseValidation,
    Tier,
    VercelChecksum,
    utcnow,
)
from esmc.settings import Settings, get_settings

logger = logging.getLogger(__name__)


def _as_aware(value: datetime) -> datetime:
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def find_project_root(start: str | Path | None = None) -> Path:
    """Walk up from ``start`` (default: cwd) to the directory owning ``.claude/``."""
    current = Path(start or Path.cwd()).resolve()
    best_candidate: Path | None = None

    for candidate in (current, *current.parents):
        claude = candidate / ".claude"
        if (claude / "memory").is_dir():
            return candidate
        if best_candidate is None and claude.is_dir():
            best_candidate = candidate

    root = best_candidate or Path.cwd()
    memory = root / ".claude" / "memory"
    if not memory.exists():
        memory.mkdir(parents=True, exist_ok=True)
        logger.info("Created %s for first-run initialization", memory)
    return root


def verify_blessing_token(blessing: Blessing | dict | None) -> bool:
    """Structural check of a guardian blessing: fields present and not expired."""
    if blessing is None:
        logger.error("[Blessing Validation] Missing blessing or signature")
        return False
    if isinstance(blessing, dict):
        blessing = Blessing.model_validate(blessing)
    if not blessing.signature:
        logger.error("[Blessing Validation] Missing blessing or signature")
        return False
    if not blessing.tier or not blessing.expires_at or not blessing.composite_device_id:
        logger.error("[Blessing Validation] Missing required blessing fields")
        return False
    if utcnow() > _as_aware(blessing.expires_at):
        logger.error("[Blessing Validation] Blessing token expired")
        return False
    logger.info("[Blessing Validation] Structure valid, signature present")
    return True


class LicenseManager:
    def __init__(
        self,
        settings: Settings | None = None,
        *,
        project_root: str | Path | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or get_settings()
        root = project_root or self.settings.project_root
        self.project_root = Path(root) if root else find_project_root()
        self._transport = transport

    @property
    def license_dir(self) -> Path:
        return self.project_root / ".claude"

    @property
    def license_path(self) -> Path:
        return self.license_dir / self.settings.license_filename

    # -----------------------------------------------------------------------
    # File I/O
    # -----------------------------------------------------------------------

    def create_license_data(
        self,
        *,
        email: str,
        user_id: str | None = None,
        display_name: str | None = None,
        tier: Tier | str | None = None,
        subscription_status: str | None = None,
        subscription_end_date: datetime | str | None = None,
        composite_device_id: str | None = None,
        blessing: Blessing | dict | None = None,
        vercel_checksum: VercelChecksum | dict | None = None,
        features: list[str] | None = None,
        max_devices: int | None = None,
    ) -> LicenseData:
        now = utcnow()
        return LicenseData(
            version=self.settings.license_version,
            email=email,
            user_id=user_id,
            display_name=display_name or email.split("@")[0],
            tier=tier or Tier.FREE,
            subscription_status=subscription_status or "active",
            subscription_end_date=subscription_end_date,
            composite_device_id=composite_device_id,
            blessing=blessing,
            vercel_checksum=vercel_checksum,
            features=features,
            max_devices=max_devices,
            issued_at=now,
            last_validated=now,
        )

    def write_license_file(self, **user_data) -> LicenseData:
        """Build a license from ``user_data`` and write it. Raises OSError on failure."""
        license_data = self.create_license_data(**user_data)
        self.license_dir.mkdir(parents=True, exist_ok=True)
        self.license_path.write_text(json.dumps(license_data.to_wire(), indent=2), encoding="utf-8")
        logger.info("License written: %s (tier=%s)", self.license_path.name, license_data.tier.value)
        return license_data

    def update_license_file(self, **user_data) -> LicenseData:
        return self.write_license_file(**user_data)

    def read_license_file(self) -> LicenseData | None:
        """Load the license. Expired licenses come back downgraded to FREE."""
        path = self.license_path
        if not path.exists():
            logger.info("No license file found - user not logged in")
            return None

        try:
            license_data = LicenseData.model_validate(json.loads(path.read_text(encoding="utf-8")))
        except (OSError, ValueError) as e:
            logger.error("License file read failed: %s", e)
            return None

        end = license_data.subscription_end_date
        if end is not None and utcnow() > _as_aware(end):
            logger.warning("License expired: %s", end.isoformat())
            return license_data.model_copy(
                update={"tier": Tier.FREE, "subscription_status": "expired"}
            )
        return license_data

    def delete_license_file(self) -> bool:
        path = self.license_path
        if not path.exists():
            return False
        path.unlink()
        logger.info("License file deleted")
        return True

    # -----------------------------------------------------------------------
    # Validation
    # -----------------------------------------------------------------------

    def validate_license(self) -> LicenseValidation:
        license_data = self.read_license_file()
        if license_data is None:
            return LicenseValidation(valid=False, tier=Tier.FREE, reason="No license file found")

        return LicenseValidation(
            valid=True,
            tier=license_data.tier,
            email=license_data.email,
            user_id=license_data.user_id,
            subscription_status=license_data.subscription_status,
            subscription_end_date=license_data.subscription_end_date,
            features=license_data.features,
            issued_at=license_data.issued_at,
            last_validated=license_data.last_validated,
        )

    def get_license_info(self) -> LicenseData | None:
        return self.read_license_file()

    async def validate_vercel_checksum(
        self, email: str, tier: Tier | str, checksum: VercelChecksum | dict | None
    ) -> bool:
        """Ask the auth server whether the rotation checksum is current.

        Any failure (missing data, network error, bad response) → False.
        """
        if isinstance(checksum, dict):
            checksum = VercelChecksum.model_validate(checksum)
        if checksum is None or not checksum.value or not checksum.rotation:
            logger.error("[Checksum Validation] Missing checksum data")
            return False

        params = {
            "email": email,
            "tier": Tier.parse(tier).value,
            "rotation": checksum.rotation,
            "checksum": checksum.value,
        }
        try:
            async with httpx.AsyncClient(
                timeout=self.settings.http_timeout, transport=self._transport
            ) as client:
                resp = await client.get(self.settings.checksum_url, params=params)
            result = resp.json()
        except httpx.HTTPError as e:
            logger.error("[Checksum Validation] Network error: %s", e)
            return False
        except ValueError as e:
            logger.error("[Checksum Validation] Parse error: %s", e)
            return False

        if result.get("valid"):
            logger.info("[Checksum Validation] Checksum validated")
            return True
        logger.error("[Checksum Validation] Checksum validation failed: %s", result.get("error"))
        return False

    # -----------------------------------------------------------------------
    # Credentials bridge
    # -----------------------------------------------------------------------

    def sync_from_credentials(self, credentials: Credentials) -> LicenseData:
        """Write a license file from stored login credentials."""
        local_part = credentials.email.split("@")[0]
        return self.write_license_file(
            email=credentials.email,
            user_id=credentials.user_id or f"MCP_{local_part}",
            display_name=credentials.name or local_part,
            tier=credentials.tier,
            subscription_status="active",
            subscription_end_date=credentials.expires_at,
            features=[],
            max_devices=MAX_DEVICES.get(credentials.tier, DEFAULT_MAX_DEVICES),
        )
