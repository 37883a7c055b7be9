"""Unit tests for CLI commands — license, integrity and account (no network)."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from unittest.mock import patch

import pytest
import yaml
from typer.testing import CliRunner

from esmc.api import cli as cli_root
from esmc.api.cli import app
from esmc.api.cli import auth as auth_cli
from esmc.api.cli import integrity as integrity_cli
from esmc.api.cli import license as license_cli
from esmc.ontology.types import Credentials, LicenseData, Tier
from esmc.services.integrity import MANIFEST_PATH, SIGNATURE_FILENAME, sign_manifest
from esmc.services.license import LicenseManager
from esmc.services.login import LoginError
from esmc.utils.hashing import hash_hex

runner = CliRunner()


@pytest.fixture(autouse=True)
def cli_settings(settings, monkeypatch):
    for module in (cli_root, auth_cli, integrity_cli, license_cli):
        monkeypatch.setattr(module, "get_settings", lambda: settings)
    return settings


@pytest.fixture
def licenses(settings):
    return LicenseManager(settings)


# ============================================================================
# hash / verify-package
# ============================================================================


class TestHash:
    def test_text(self):
        result = runner.invoke(app, ["hash", "--text", "hello"])
        assert result.exit_code == 0
        assert result.output.strip() == hash_hex("hello")

    def test_file(self, tmp_path):
        path = tmp_path / "f.txt"
        path.write_text("content")
        result = runner.invoke(app, ["hash", str(path)])
        assert result.exit_code == 0
        assert result.output.strip() == hash_hex("content")

    def test_not_a_file(self, tmp_path):
        result = runner.invoke(app, ["hash", str(tmp_path / "missing")])
        assert result.exit_code == 1
        assert "Not a file" in result.output


class TestVerifyPackage:
    def _package(self, dist):
        (dist / "bin").mkdir()
        (dist / "bin" / "esmc.js").write_text("main")
        manifest = {"buildVersion": "3.65.0", "totalFiles": 1, "checksums": {"bin/esmc.js": hash_hex("main")}}
        (dist / MANIFEST_PATH).parent.mkdir(parents=True)
        (dist / MANIFEST_PATH).write_text(json.dumps(manifest))
        (dist / SIGNATURE_FILENAME).write_text(json.dumps({"signature": sign_manifest(manifest)}))

    def test_pass(self, tmp_path):
        self._package(tmp_path)
        result = runner.invoke(app, ["verify-package", str(tmp_path)])
        assert result.exit_code == 0
        assert "PASS" in result.output
        assert "3.65.0" in result.output

    def test_modified_fails(self, tmp_path):
        self._package(tmp_path)
        (tmp_path / "bin" / "esmc.js").write_text("patched")
        result = runner.invoke(app, ["verify-package", str(tmp_path)])
        assert result.exit_code == 1
        assert "modified:  bin/esmc.js" in result.output
        assert "FAIL" in result.output

    def test_no_manifest(self, tmp_path):
        result = runner.invoke(app, ["verify-package", str(tmp_path)])
        assert result.exit_code == 1
        assert "Integrity manifest not found" in result.output

    def test_malformed_manifest(self, tmp_path):
        self._package(tmp_path)
        (tmp_path / MANIFEST_PATH).write_text("{not json")
        result = runner.invoke(app, ["verify-package", str(tmp_path)])
        assert result.exit_code == 1
        assert "Integrity manifest is malformed" in result.output


# ============================================================================
# license show / validate / sync
# ============================================================================


class TestLicenseCommands:
    def test_show_without_license(self):
        result = runner.invoke(app, ["license", "show"])
        assert result.exit_code == 1
        assert "esmc login" in result.output

    def test_show_yaml(self, licenses):
        licenses.write_license_file(email="ada@example.com", user_id="u1", tier="PRO")
        result = runner.invoke(app, ["license", "show"])
        assert result.exit_code == 0
        shown = yaml.safe_load(result.output)
        assert shown["email"] == "ada@example.com"
        assert shown["tier"] == "PRO"
        assert shown["userId"] == "u1"

    def test_validate_missing(self):
        result = runner.invoke(app, ["license", "validate"])
        assert result.exit_code == 1
        assert "No license file found" in result.output

    def test_validate_ok(self, licenses):
        licenses.write_license_file(email="ada@example.com", tier="MAX")
        result = runner.invoke(app, ["license", "validate"])
        assert result.exit_code == 0
        assert "MAX" in result.output

    def test_validate_bad_blessing(self, licenses):
        licenses.write_license_file(email="ada@example.com", tier="MAX", blessing={"signature": "s"})
        result = runner.invoke(app, ["license", "validate"])
        assert result.exit_code == 1
        assert "blessing:  INVALID" in result.output

    def test_sync_without_credentials(self):
        result = runner.invoke(app, ["license", "sync"])
        assert result.exit_code == 1
        assert "No credentials found" in result.output

    def test_sync(self, store, licenses, monkeypatch):
        expires = datetime(2031, 3, 4, tzinfo=timezone.utc)
        store.save(Credentials(token="t", email="ada@example.com", tier=Tier.PRO, expires_at=expires))
        monkeypatch.setattr(license_cli, "CredentialStore", lambda **kwargs: store)
        result = runner.invoke(app, ["license", "sync"])
        assert result.exit_code == 0
        assert "Mar 04, 2031" in result.output
        assert licenses.read_license_file().max_devices == 3


# ============================================================================
# Account commands
# ============================================================================


class TestAccountCommands:
    def test_logout_removes_license(self, licenses):
        licenses.write_license_file(email="ada@example.com")
        result = runner.invoke(app, ["logout"])
        assert result.exit_code == 0
        assert "Logged out." in result.output
        assert not licenses.license_path.exists()

    def test_logout_without_license(self):
        result = runner.invoke(app, ["logout"])
        assert result.exit_code == 0
        assert "no license file found" in result.output

    def test_whoami(self, licenses):
        licenses.write_license_file(
            email="ada@example.com", display_name="Ada", tier="PRO", composite_device_id="dev-1"
        )
        result = runner.invoke(app, ["whoami"])
        assert result.exit_code == 0
        assert "Ada <ada@example.com>" in result.output
        assert "PRO (active)" in result.output
        assert "dev-1" in result.output

    def test_whoami_logged_out(self):
        result = runner.invoke(app, ["whoami"])
        assert result.exit_code == 1

    def test_status_logged_out(self):
        result = runner.invoke(app, ["status"])
        assert result.exit_code == 0
        assert "FREE" in result.output
        assert "default" in result.output
        assert "colonels" in result.output
        assert "ALPHA, BETA, GAMMA" in result.output

    def test_hardware(self):
        with patch.object(auth_cli, "get_hardware_id", return_value="f" * 64), \
             patch.object(auth_cli, "get_device_name", return_value="devbox"):
            result = runner.invoke(app, ["hardware"])
        assert result.exit_code == 0
        assert "f" * 64 in result.output
        assert "devbox" in result.output


class _FakeFlow:
    outcome = None

    def __init__(self, settings):
        self.auth_url = "https://auth.test/auth/auth-login?state=x"

    async def run(self):
        if isinstance(_FakeFlow.outcome, Exception):
            raise _FakeFlow.outcome
        return _FakeFlow.outcome


class TestLogin:
    def test_success(self, monkeypatch):
        _FakeFlow.outcome = LicenseData(
            version="3.65.0",
            email="ada@example.com",
            display_name="Ada",
            tier=Tier.MAX,
            subscription_end_date=datetime(2030, 1, 2, tzinfo=timezone.utc),
        )
        monkeypatch.setattr(auth_cli, "LoginFlow", _FakeFlow)
        result = runner.invoke(app, ["login"])
        assert result.exit_code == 0
        assert "ada@example.com" in result.output
        assert "MAX" in result.output
        assert "Jan 02, 2030" in result.output

    def test_failure(self, monkeypatch):
        _FakeFlow.outcome = LoginError("Authentication timed out after 300s")
        monkeypatch.setattr(auth_cli, "LoginFlow", _FakeFlow)
        result = runner.invoke(app, ["login"])
        assert result.exit_code == 1
        assert "timed out" in result.output
        assert "auth-login" in result.output
