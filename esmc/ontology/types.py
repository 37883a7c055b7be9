"""Built-in types — tiers, credentials, license files, integrity reports.

Models that are persisted or exchanged with the auth server use camelCase
aliases on the wire (``subscriptionEndDate``, ``compositeDeviceId`` …) so the
files written here stay readable by the dashboard and the tier gate hooks.
Construct them with snake_case names; dump with ``model_dump(by_alias=True)``.

Tier feature table (``TIER_FEATURES``) is kept in sync with the backend API.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Tier(str, Enum):
    FREE = "FREE"
    PRO = "PRO"
    MAX = "MAX"
    VIP = "VIP"

    @classmethod
    def parse(cls, value: Any) -> Tier:
        """Coerce a tier name (any case) to a Tier; unknown or empty → FREE."""
        if isinstance(value, Tier):
            return value
        try:
            return cls(str(value or "").upper())
        except ValueError:
            return cls.FREE

    @property
    def level(self) -> int:
        return TIER_HIERARCHY.index(self)


TIER_HIERARCHY: list[Tier] = [Tier.FREE, Tier.PRO, Tier.MAX, Tier.VIP]

TierField = Annotated[Tier, BeforeValidator(Tier.parse)]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Wire base
# ---------------------------------------------------------------------------


class WireModel(BaseModel):
    """camelCase on the wire, snake_case in Python. Unknown keys are kept."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True)


# ---------------------------------------------------------------------------
# Tiers
# ---------------------------------------------------------------------------


class TierFeatures(BaseModel):
    """Capabilities unlocked by a subscription tier."""

    intelligence: list[str] = Field(default_factory=list)
    colonels: list[str] = Field(default_factory=list)
    modules: list[str] = Field(default_factory=list)
    memory: str = "json"  # json | mysql
    max_projects: int = 1
    max_hardware: int = 1
    red_teaming: bool = False
    time_machine: bool = False
    memory_bank: bool = False
    echelon: bool = False
    version: str = ""
    display_name: str = ""


_ALL_INTELLIGENCE = ["PIU", "DKI", "UIP", "PCA", "ATLAS", "CUP", "TBI", "PFI"]
_ALL_COLONELS = ["ALPHA", "BETA", "GAMMA", "DELTA", "EPSILON", "ZETA", "ETA"]
_ALL_MODULES = [f"ESMC_3.{n}" for n in range(1, 12)]

TIER_FEATURES: dict[Tier, TierFeatures] = {
    Tier.FREE: TierFeatures(
        intelligence=["PIU"],
        colonels=["ALPHA", "BETA", "GAMMA"],
        modules=[],
        memory="json",
        max_projects=1,
        version="ESMC 3.2",
        display_name="FREE",
    ),
    Tier.PRO: TierFeatures(
        intelligence=["PIU", "DKI", "UIP", "PCA"],
        colonels=_ALL_COLONELS[:6],
        modules=["ESMC_3.2", "ESMC_3.3", "ESMC_3.4", "ESMC_3.5", "ESMC_3.7", "ESMC_3.8"],
        memory="json",
        max_projects=10,
        time_machine=True,
        memory_bank=True,
        echelon=True,
        version="ESMC 3.7",
        display_name="PRO",
    ),
    Tier.MAX: TierFeatures(
        intelligence=_ALL_INTELLIGENCE,
        colonels=_ALL_COLONELS,
        modules=_ALL_MODULES,
        memory="mysql",
        max_projects=999,
        red_teaming=True,
        time_machine=True,
        memory_bank=True,
        echelon=True,
        version="ESMC 3.11",
        display_name="MAX",
    ),
    Tier.VIP: TierFeatures(
        intelligence=_ALL_INTELLIGENCE,
        colonels=_ALL_COLONELS,
        modules=_ALL_MODULES,
        memory="mysql",
        max_projects=999,
        red_teaming=True,
        time_machine=True,
        memory_bank=True,
        echelon=True,
        version="ESMC 3.11",
        display_name="VIP",
    ),
}

# Device allowance written into synced licenses
MAX_DEVICES: dict[Tier, int] = {Tier.FREE: 1, Tier.PRO: 3}
DEFAULT_MAX_DEVICES = 10


class BackendUser(WireModel):
    """User block of a successful backend validation response."""

    tier: TierField = Tier.FREE
    email: str | None = None
    name: str | None = None
    expires_at: datetime | None = None


class TierStatus(BaseModel):
    """Outcome of TierManager.initialize()."""

    tier: Tier
    source: str  # default | backend | expired | local
    authenticated: bool
    email: str | None = None
    name: str | None = None
    expires_at: datetime | None = None
    message: str | None = None


# ---------------------------------------------------------------------------
# Identity
# ---------------------------------------------------------------------------


class OSInfo(BaseModel):
    platform: str
    release: str
    arch: str

    def __str__(self) -> str:
        return f"{self.platform} {self.release} ({self.arch})"


class Credentials(WireModel):
    """Login session stored encrypted at ``~/.esmc/credentials.json``."""

    token: str = ""
    email: str = ""
    name: str | None = None
    user_id: str | None = None
    tier: TierField = Tier.FREE
    expires_at: datetime | None = None  # None → FREE tier, never expires


class UserData(BaseModel):
    """User claims extracted from a verified JWT."""

    email: str
    user_id: str | None = None
    tier: TierField = Tier.FREE
    name: str | None = None
    exp: int | None = None
    iat: int | None = None
    issuer: str | None = None
    hardware_id: str | None = None  # server-validated composite device id
    subscription_end_date: datetime | None = None


# ---------------------------------------------------------------------------
# License file
# ---------------------------------------------------------------------------


class Blessing(WireModel):
    """Guardian blessing token — server-signed tamper protection."""

    signature: str | None = None
    tier: str | None = None
    expires_at: datetime | None = None
    composite_device_id: str | None = None


class VercelChecksum(WireModel):
    """Rotation-based anti-replay checksum issued at login."""

    value: str | None = None
    rotation: str | None = None


class LicenseData(WireModel):
    """Plaintext license file at ``{project_root}/.claude/.esmc-license.json``."""

    version: str
    mode: str = "plaintext"

    email: str
    user_id: str | None = None
    display_name: str

    tier: TierField = Tier.FREE
    subscription_status: str = "active"  # active | expired | cancelled
    subscription_end_date: datetime | None = None

    composite_device_id: str | None = None
    blessing: Blessing | None = None
    vercel_checksum: VercelChecksum | None = None

    features: list[str] | None = None
    max_devices: int | None = None

    issued_at: datetime = Field(default_factory=utcnow)
    last_validated: datetime = Field(default_factory=utcnow)


class LicenseValidation(BaseModel):
    valid: bool
    tier: Tier
    reason: str | None = None
    email: str | None = None
    user_id: str | None = None
    subscription_status: str | None = None
    subscription_end_date: datetime | None = None
    features: list[str] | None = None
    issued_at: datetime | None = None
    last_validated: datetime | None = None


# ---------------------------------------------------------------------------
# Integrity
# ---------------------------------------------------------------------------


class IntegritySample(BaseModel):
    """One server-chosen file + expected SHA-256, relative to the components dir."""

    file: str
    hash: str


class IntegrityResult(BaseModel):
    success: bool
    failed: list[str] = Field(default_factory=list)
    verified: int = 0
    total: int = 0
    skipped: bool = False
    error: str | None = None


class PackageReport(BaseModel):
    """Result of verifying a built package against its integrity manifest."""

    build_version: str | None = None
    signature_valid: bool = False
    verified: int = 0
    modified: list[str] = Field(default_factory=list)
    missing: list[str] = Field(default_factory=list)
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.signature_valid and not self.modified and not self.missing and self.error is None
