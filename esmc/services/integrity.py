"""SDK integrity checks — login-time sampling and full package verification.

Sampling: at login the server sends a handful of ``{file, hash}`` pairs from
``.claude/ESMC-Chaos/components``. Any mismatch revokes the local license.

Package verification: a built package carries an integrity manifest
(``.claude/ESMC-Chaos/.integrity-manifest.json``) listing SHA-256 checksums
per file, plus a ``.package-signature`` holding an HMAC-SHA256 of the
manifest. Both must hold for the package to be deployable.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
from pathlib import Path
from typing import Iterable

from pydantic import ValidationError

from esmc.ontology.types import IntegrityResult, IntegritySample, PackageReport
from esmc.utils.hashing import file_sha256

logger = logging.getLogger(__name__)

COMPONENTS_DIR = Path(".claude") / "ESMC-Chaos" / "components"
MANIFEST_PATH = Path(".claude") / "ESMC-Chaos" / ".integrity-manifest.json"
SIGNATURE_FILENAME = ".package-signature"


def find_components_dir(roots: Iterable[str | Path]) -> Path | None:
    for root in roots:
        candidate = Path(root) / COMPONENTS_DIR
        if candidate.is_dir():
            return candidate
    return None


def verify_integrity_samples(
    samples: list[IntegritySample | dict],
    roots: Iterable[str | Path] | None = None,
) -> IntegrityResult:
    """Hash each sampled component file and compare with the expected digest.

    Skipped (success) when no components directory exists under ``roots``.
    """
    try:
        samples = [s if isinstance(s, IntegritySample) else IntegritySample.model_validate(s) for s in samples]
        components = find_components_dir(roots or [Path.cwd()])
        if components is None:
            logger.info("Components directory not found - integrity sampling skipped")
            return IntegrityResult(success=True, skipped=True, total=len(samples))

        base = components.resolve()
        failed: list[str] = []
        verified = 0
        for sample in samples:
            path = (components / sample.file).resolve()
            if not path.is_relative_to(base) or not path.is_file():
                failed.append(sample.file)
                continue
            if file_sha256(path) != sample.hash:
                failed.append(sample.file)
            else:
                verified += 1
    except (ValidationError, TypeError, AttributeError, OSError) as e:
        # Malformed sample data counts as a failed check
        logger.error("Integrity sampling error: %s", e)
        return IntegrityResult(success=False, failed=["ERROR"], error=str(e))

    if failed:
        logger.warning("Integrity sampling failed for %d/%d files", len(failed), len(samples))
    return IntegrityResult(success=not failed, failed=failed, verified=verified, total=len(samples))


def revoke_license(candidates: Iterable[str | Path]) -> bool:
    """Delete the first license file that exists among ``candidates``."""
    for candidate in candidates:
        path = Path(candidate)
        if path.exists():
            path.unlink()
            logger.warning("License revoked: %s", path)
            return True
    return False


# ---------------------------------------------------------------------------
# Package signature
# ---------------------------------------------------------------------------


def signature_key(build_version: str, passphrase: str = "") -> bytes:
    """HMAC key: SHA-256 of the configured passphrase or the build-derived default."""
    secret = passphrase or f"ESMC-{build_version}-package-signature"
    return hashlib.sha256(secret.encode("utf-8")).digest()


def _manifest_bytes(manifest: dict) -> bytes:
    # Compact and insertion-ordered, matching the manifest bytes signed at build time
    return json.dumps(manifest, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def sign_manifest(manifest: dict, passphrase: str = "") -> str:
    key = signature_key(str(manifest.get("buildVersion", "")), passphrase)
    return hmac.new(key, _manifest_bytes(manifest), hashlib.sha256).hexdigest()


def _read_json_object(path: Path) -> dict | None:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        logger.error("Could not read %s: %s", path.name, e)
        return None
    return data if isinstance(data, dict) else None


def verify_package(dist_dir: str | Path, passphrase: str = "") -> PackageReport:
    dist = Path(dist_dir)
    manifest_path = dist / MANIFEST_PATH
    if not manifest_path.exists():
        logger.error("Integrity manifest not found: %s", manifest_path)
        return PackageReport(error="Integrity manifest not found")

    manifest = _read_json_object(manifest_path)
    if manifest is None or not isinstance(manifest.get("checksums") or {}, dict):
        logger.error("Integrity manifest is malformed: %s", manifest_path)
        return PackageReport(error="Integrity manifest is malformed")

    build_version = manifest.get("buildVersion")
    report = PackageReport(build_version=None if build_version is None else str(build_version))
    logger.info(
        "Verifying build %s (%s files expected)",
        manifest.get("buildVersion"), manifest.get("totalFiles"),
    )

    signature_path = dist / SIGNATURE_FILENAME
    if not signature_path.exists():
        logger.error("Package signature not found: %s", signature_path)
        report.error = "Package signature not found"
        return report

    signature = _read_json_object(signature_path)
    if signature is None:
        logger.error("Package signature is malformed: %s", signature_path)
        report.error = "Package signature is malformed"
        return report

    expected = signature.get("signature", "")
    if not hmac.compare_digest(sign_manifest(manifest, passphrase).encode(), str(expected).encode("utf-8")):
        logger.error("Signature mismatch - package may be tampered")
        report.error = "Signature mismatch"
        return report
    report.signature_valid = True

    for rel, expected_hash in (manifest.get("checksums") or {}).items():
        path = dist / rel
        if not path.is_file():
            logger.error("Missing: %s", rel)
            report.missing.append(rel)
        elif file_sha256(path) != expected_hash:
            logger.error("Modified: %s", rel)
            report.modified.append(rel)
        else:
            report.verified += 1

    return report
