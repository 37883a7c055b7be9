"""Hardware identification — multi-factor machine fingerprint.

The fingerprint combines a base machine id (platform, hostname, CPU model,
memory, MAC addresses) with a second layer of host factors, hashed with
SHA-256. It must never be overridable from the environment: a set
``ESMC_HARDWARE_ID`` that disagrees with the computed value is logged as a
spoofing attempt and ignored.
"""

from __future__ import annotations

import logging
import os
import platform
import socket

import psutil

from esmc.ontology.types import OSInfo
from esmc.utils.hashing import hash_hex

logger = logging.getLogger(__name__)

_NULL_MAC = "00:00:00:00:00:00"


def _hostname() -> str:
    return socket.gethostname()


def _cpu_model() -> str:
    return platform.processor() or platform.machine() or "unknown"


def _total_memory() -> int:
    return psutil.virtual_memory().total


def _mac_addresses() -> dict[str, list[str]]:
    """Interface name → MAC addresses (link-layer entries only)."""
    macs: dict[str, list[str]] = {}
    for name, addrs in psutil.net_if_addrs().items():
        for addr in addrs:
            if addr.family == psutil.AF_LINK and addr.address:
                macs.setdefault(name, []).append(addr.address.lower().replace("-", ":"))
    return macs


def _primary_mac(macs: dict[str, list[str]]) -> str:
    for name, addresses in macs.items():
        lowered = name.lower()
        if "loopback" in lowered or "virtual" in lowered or lowered == "lo":
            continue
        if addresses:
            return addresses[0]
    return "no-mac"


def generate_base_machine_id() -> str:
    """SHA-256 of ``platform|hostname|cpus|totalmem|sorted-macs``."""
    macs = sorted(
        mac for addresses in _mac_addresses().values() for mac in addresses if mac != _NULL_MAC
    )
    cpus = _cpu_model() * (os.cpu_count() or 1)
    hardware_string = "|".join([
        platform.system().lower(),
        _hostname(),
        cpus,
        str(_total_memory()),
        ",".join(macs),
    ])
    return hash_hex(hardware_string)


def get_hardware_id() -> str:
    """Return the device fingerprint (64-char hex).

    Falls back to SHA-256 of ``hostname + arch`` if any factor can't be read.
    """
    try:
        machine_id = generate_base_machine_id()
        try:
            primary_mac = _primary_mac(_mac_addresses())
        except OSError:
            primary_mac = "no-mac"

        fingerprint = hash_hex("|".join([
            machine_id,
            _hostname(),
            _cpu_model()[:50],
            str(_total_memory()),
            platform.machine(),
            primary_mac,
        ]))
    except Exception as e:
        logger.error("Error getting hardware ID: %s", e)
        return hash_hex(_hostname() + platform.machine())

    override = os.environ.get("ESMC_HARDWARE_ID")
    if override and override != fingerprint:
        logger.warning(
            "Attempted hardware ID spoofing detected: ESMC_HARDWARE_ID is ignored, "
            "using the derived hardware fingerprint"
        )
    return fingerprint


def get_device_name() -> str:
    return _hostname() or "Unknown Device"


def get_os_info() -> OSInfo:
    return OSInfo(platform=platform.system(), release=platform.release(), arch=platform.machine())
