"""Configuration via pydantic-settings."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Remote endpoints (esmc-sdk.com deployment)
    auth_url: str = "https://esmc-sdk.com/auth/auth-login"
    api_url: str = "https://esmc-sdk.com/api"
    dashboard_url: str = "https://esmc-sdk.com/dashboard"
    jwks_url: str = "https://esmc-sdk.com/.well-known/jwks.json"
    checksum_url: str = "https://esmc-sdk.com/api/v1/auth/validate-checksum"
    http_timeout: float = 5.0

    # JWT claims expected on tokens issued by the auth server
    jwt_issuer: str = "esmc-sdk.com"
    jwt_audience: str = "esmc-client"
    jwks_cache_ttl: int = 3600  # 1h

    # Login callback listener
    callback_host: str = "127.0.0.1"
    callback_port: int = 37847
    callback_timeout: int = 300  # 5min

    # Credential storage (machine-bound, AES-256-CBC)
    credentials_path: str = "~/.esmc/credentials.json"

    # Server info
    server_name: str = "esmc-mcp-server"
    server_version: str = "3.8.0"

    # License file — {project_root}/.claude/{license_filename}
    license_version: str = "3.65.0"
    license_filename: str = ".esmc-license.json"
    project_root: str = ""  # empty → auto-detect by walking up to .claude/memory

    # Brain discovery — SHA-256 of the real brain file per tier
    brain_dir: str = ""  # empty → {project_root}/.claude/ESMC Complete/core/brain
    brain_checksum_free: str = "5aaa515d2f69b2218593ac199a0df15560918e077020a8eb4fd257f9c2d5e682"
    brain_checksum_pro: str = "952c81d89959f1c67c7d52264d7633d904b2ea99babe93844c5ae7e514b5b27b"
    brain_checksum_max: str = "1d55a5b27a5fa85cc89e98878201eba6e9a211e386da69e2f7a79df65f601897"

    # Package signing (HMAC key passphrase; empty → derived from build version)
    package_signature_key: str = ""

    # Dev mode disables JWT signature checks — never honoured in production
    dev_mode: bool = False
    environment: str = "development"  # development | production

    log_level: str = "INFO"

    model_config = {"env_prefix": "ESMC_", "env_file": ".env", "extra": "ignore"}


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return a cached singleton Settings instance."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
