"""Shared fixtures — isolated settings, project root and credential store."""

from __future__ import annotations

import os
import sys

import pytest

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

# Force test-safe settings before any module imports Settings()
os.environ.pop("ESMC_HARDWARE_ID", None)
os.environ["ESMC_DEV_MODE"] = "false"
os.environ["ESMC_ENVIRONMENT"] = "development"

from esmc.services.credentials import CredentialStore  # noqa: E402
from esmc.settings import Settings  # noqa: E402

MACHINE_KEY = bytes(range(32))


@pytest.fixture
def project_root(tmp_path):
    root = tmp_path / "project"
    (root / ".claude" / "memory").mkdir(parents=True)
    return root


@pytest.fixture
def settings(tmp_path, project_root):
    return Settings(
        _env_file=None,
        project_root=str(project_root),
        credentials_path=str(tmp_path / "home" / ".esmc" / "credentials.json"),
        api_url="https://api.test/api",
        jwks_url="https://auth.test/.well-known/jwks.json",
        checksum_url="https://api.test/api/v1/auth/validate-checksum",
        auth_url="https://auth.test/auth/auth-login",
    )


@pytest.fixture
def store(settings):
    return CredentialStore(settings=settings, key=MACHINE_KEY)
