"""Unit tests for TierManager — tier resolution, feature gates and brain discovery."""

from __future__ import annotations

import json
from datetime import datetime, timedelta, timezone

import httpx
import pytest

from esmc.ontology.types import Credentials, Tier
from esmc.services.tiers import TierManager
from esmc.utils.hashing import hash_hex
from tests.unit.helpers import failing_transport, json_transport

HW = "hw-fingerprint"


def _manager(settings, store, transport=None):
    return TierManager(
        settings,
        store=store,
        hardware_id=lambda: HW,
        transport=transport or failing_transport(httpx.ConnectError("offline")),
    )


def _save(store, tier=Tier.PRO, expires_in_days: int | None = 30):
    expires = None
    if expires_in_days is not None:
        expires = datetime.now(timezone.utc) + timedelta(days=expires_in_days)
    store.save(Credentials(token="tok", email="ada@example.com", name="Ada", tier=tier, expires_at=expires))


# ---------------------------------------------------------------------------
# initialize()
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestInitialize:
    async def test_no_credentials_is_free(self, settings, store):
        calls: list = []
        manager = _manager(settings, store, json_transport({"valid": True}, calls=calls))
        status = await manager.initialize()
        assert status.tier == Tier.FREE
        assert status.source == "default"
        assert status.authenticated is False
        assert calls == []

    async def test_backend_tier_wins(self, settings, store):
        _save(store, tier=Tier.PRO)
        calls: list = []
        payload = {"valid": True, "user": {"tier": "MAX", "email": "ada@example.com", "name": "Ada"}}
        manager = _manager(settings, store, json_transport(payload, calls=calls))
        status = await manager.initialize()
        assert status.source == "backend"
        assert status.tier == Tier.MAX
        assert manager.tier == Tier.MAX
        request = calls[0]
        assert str(request.url) == "https://api.test/api/esmc/mcp/validate"
        assert json.loads(request.content) == {"token": "tok", "hardwareId": HW}

    async def test_backend_rejects_falls_back_to_local(self, settings, store):
        _save(store, tier=Tier.PRO)
        manager = _manager(settings, store, json_transport({"valid": False}, status=401))
        status = await manager.initialize()
        assert status.source == "local"
        assert status.tier == Tier.PRO
        assert status.email == "ada@example.com"

    async def test_offline_uses_local(self, settings, store):
        _save(store, tier=Tier.MAX, expires_in_days=None)
        status = await _manager(settings, store).initialize()
        assert status.source == "local"
        assert status.tier == Tier.MAX

    async def test_expired_clears_credentials(self, settings, store):
        _save(store, tier=Tier.MAX, expires_in_days=-1)
        manager = _manager(settings, store)
        status = await manager.initialize()
        assert status.source == "expired"
        assert status.tier == Tier.FREE
        assert store.load() is None
        assert manager.get_user_info() is None

    async def test_backend_expiry_parsed(self, settings, store):
        _save(store)
        payload = {"valid": True, "user": {"tier": "MAX", "email": "ada@example.com", "expiresAt": "2031-01-01T00:00:00Z"}}
        status = await _manager(settings, store, json_transport(payload)).initialize()
        assert status.source == "backend"
        assert status.expires_at.year == 2031

    async def test_malformed_backend_user_falls_back_to_local(self, settings, store):
        _save(store, tier=Tier.PRO)
        payload = {"valid": True, "user": {"tier": "MAX", "email": "ada@example.com", "expiresAt": "soon"}}
        manager = _manager(settings, store, json_transport(payload))
        assert await manager.validate_with_backend("tok", HW) is None
        status = await manager.initialize()
        assert status.source == "local"
        assert status.tier == Tier.PRO

    async def test_unknown_backend_tier_is_free(self, settings, store):
        _save(store)
        payload = {"valid": True, "user": {"tier": "PLATINUM", "email": "ada@example.com"}}
        status = await _manager(settings, store, json_transport(payload)).initialize()
        assert status.tier == Tier.FREE


# ---------------------------------------------------------------------------
# Feature gates
# ---------------------------------------------------------------------------


class TestGates:
    def test_free_defaults(self, settings, store):
        manager = _manager(settings, store)
        assert manager.tier == Tier.FREE
        assert manager.is_intelligence_enabled("PIU")
        assert not manager.is_intelligence_enabled("ATLAS")
        assert manager.get_available_colonels(["ALPHA", "DELTA", "ETA"]) == ["ALPHA"]
        assert manager.get_memory_type() == "json"
        assert not manager.is_mysql_enabled()

    def test_max_unlocks_everything(self, settings, store):
        manager = _manager(settings, store)
        manager._set_tier("max")
        assert manager.is_colonel_enabled("ETA")
        assert manager.is_module_enabled("ESMC_3.11")
        assert manager.get_memory_type() == "mysql"
        assert manager.is_max_or_vip()

    @pytest.mark.parametrize("current,required,allowed", [
        (Tier.FREE, Tier.FREE, True),
        (Tier.FREE, Tier.PRO, False),
        (Tier.PRO, "free", True),
        (Tier.MAX, Tier.VIP, False),
        (Tier.VIP, Tier.MAX, True),
    ])
    def test_validate_access(self, settings, store, current, required, allowed):
        manager = _manager(settings, store)
        manager._set_tier(current)
        assert manager.validate_access(required) is allowed


# ---------------------------------------------------------------------------
# Brain discovery
# ---------------------------------------------------------------------------


class TestBrain:
    REAL = "TIER = 'pro'\n\ndef think():\n    return 42\n"

    @pytest.fixture
    def brain_dir(self, tmp_path):
        d = tmp_path / "brain"
        d.mkdir()
        (d / "a1.py").write_text("TIER = 'decoy'\n")
        (d / "b2.py").write_text(self.REAL)
        (d / "c3.txt").write_text(self.REAL)
        return d

    def _pro_manager(self, settings, store, brain_dir):
        settings.brain_dir = str(brain_dir)
        settings.brain_checksum_pro = hash_hex(self.REAL)
        manager = _manager(settings, store)
        manager._set_tier(Tier.PRO)
        return manager

    def test_discovers_by_hash(self, settings, store, brain_dir):
        manager = self._pro_manager(settings, store, brain_dir)
        assert manager.discover_brain_file() == brain_dir / "b2.py"

    def test_result_is_cached(self, settings, store, brain_dir):
        manager = self._pro_manager(settings, store, brain_dir)
        first = manager.discover_brain_file()
        (brain_dir / "b2.py").unlink()
        assert manager.discover_brain_file() == first

    def test_load_brain(self, settings, store, brain_dir):
        module = self._pro_manager(settings, store, brain_dir).load_brain()
        assert module.think() == 42

    def test_no_match(self, settings, store, brain_dir):
        manager = self._pro_manager(settings, store, brain_dir)
        settings.brain_checksum_pro = "0" * 64
        with pytest.raises(FileNotFoundError, match="PRO"):
            manager.discover_brain_file()

    def test_vip_has_no_checksum(self, settings, store, brain_dir):
        manager = self._pro_manager(settings, store, brain_dir)
        manager._set_tier(Tier.VIP)
        with pytest.raises(KeyError):
            manager.discover_brain_file()

    def test_default_brain_dir(self, settings, store, project_root):
        manager = _manager(settings, store)
        assert manager.brain_dir == project_root / ".claude" / "ESMC Complete" / "core" / "brain"
