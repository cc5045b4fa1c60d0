import enum
import os
import re
import threading
from dataclasses import dataclass
from typing import Iterable

import tpm_attest.logging as logging

logger = logging.getLogger('pci_ids')

# This pci ids file can be in different places on different distributions.
PCI_IDS_PATH = (
    "/usr/share/hwdata/pci.ids",
    "/usr/share/misc/pci.ids",
    "/tmp/pci.ids",
)

_HEX4 = re.compile(r"^[0-9A-Fa-f]{4}$")
_VENDOR_LINE = re.compile(r"^([0-9A-Fa-f]{4})\s+(.*\S)\s*$")
_DEVICE_LINE = re.compile(r"^\t([0-9A-Fa-f]{4})\s+(.*\S)\s*$")


def normalize_id(hex_id) -> str | None:
    """Return the lowercase form of a 4 hex digit id, None if it isn't one."""
    if not isinstance(hex_id, str):
        return None
    hex_id = hex_id.strip()
    if not _HEX4.match(hex_id):
        return None
    return hex_id.lower()


@dataclass(frozen=True)
class VendorRecord:
    id: str
    name: str


@dataclass(frozen=True)
class DeviceRecord:
    vendor_id: str
    id: str
    name: str


class DatabaseState(enum.Enum):
    UNLOADED = "unloaded"
    READY = "ready"
    # no database could be loaded; every lookup is a miss
    UNAVAILABLE = "unavailable"


class PciIdsDatabase:
    """
    Vendor and device names from a pci.ids file.

    The file lists vendors at column 0 and their devices indented by one
    tab ("hhhh  name"); subsystem lines (two tabs) and the trailing device
    class section are not used. Once loaded the tables are never modified.
    """

    def __init__(self):
        self._vendors: dict[str, VendorRecord] = {}
        self._devices: dict[tuple[str, str], DeviceRecord] = {}
        self.state = DatabaseState.UNLOADED
        self.source: str | None = None

    @property
    def is_ready(self) -> bool:
        return self.state == DatabaseState.READY

    def load_stream(self, lines: Iterable[str]):
        vendors = {}
        devices = {}
        vendor = None

        for lineno, line in enumerate(lines, 1):
            line = line.rstrip("\r\n")
            if not line.strip() or line.lstrip().startswith("#"):
                continue
            # the device class lists follow the vendors
            if line.startswith("C "):
                break
            if line.startswith("\t\t"):
                continue

            if line.startswith("\t"):
                m = _DEVICE_LINE.match(line)
                if m is None or vendor is None:
                    logger.debug("pci.ids line %d: unexpected device line, skipping", lineno)
                    continue
                device = DeviceRecord(vendor.id, m.group(1).lower(), m.group(2))
                devices[(vendor.id, device.id)] = device
            else:
                m = _VENDOR_LINE.match(line)
                if m is None:
                    logger.debug("pci.ids line %d: unexpected vendor line, skipping", lineno)
                    vendor = None
                    continue
                vendor = VendorRecord(m.group(1).lower(), m.group(2))
                vendors[vendor.id] = vendor

        self._vendors = vendors
        self._devices = devices
        self.state = DatabaseState.READY
        logger.debug("Loaded %d vendors and %d devices", len(vendors), len(devices))

    def load_file(self, path: str):
        with open(path, encoding="utf-8", errors="replace") as fh:
            self.load_stream(fh)
        self.source = path

    def find_vendor(self, vendor_id: str) -> VendorRecord | None:
        if not self.is_ready:
            return None
        vendor_id = normalize_id(vendor_id)
        if vendor_id is None:
            return None
        return self._vendors.get(vendor_id)

    def find_device(self, vendor_id: str, device_id: str) -> DeviceRecord | None:
        if not self.is_ready:
            return None
        vendor_id = normalize_id(vendor_id)
        device_id = normalize_id(device_id)
        if vendor_id is None or device_id is None:
            return None
        return self._devices.get((vendor_id, device_id))


def load_database(paths: Iterable[str] = PCI_IDS_PATH) -> PciIdsDatabase:
    """Load the first pci.ids file found; the result is UNAVAILABLE if none can be read."""
    paths = list(paths)
    db = PciIdsDatabase()

    path = next((p for p in paths if os.path.exists(p)), None)
    if path is None:
        logger.warning("No pci.ids database found (tried %s), hardware IDs will not be translated",
                       ", ".join(paths))
        db.state = DatabaseState.UNAVAILABLE
        return db

    try:
        db.load_file(path)
    except OSError as e:
        logger.warning("Unable to read %s (%s), hardware IDs will not be translated", path, e)
        db.state = DatabaseState.UNAVAILABLE
        return db

    logger.verbose("Using pci.ids database %s", path)
    return db


# Loaded at most once per process, on first use. It stays UNAVAILABLE for
# the rest of the process if the first attempt found nothing.
_database: PciIdsDatabase | None = None
_database_lock = threading.Lock()


def get_database() -> PciIdsDatabase:
    global _database
    if _database is None:
        with _database_lock:
            if _database is None:
                _database = load_database()
    return _database


def find_vendor(vendor_id: str) -> str | None:
    vendor = get_database().find_vendor(vendor_id)
    return vendor.name if vendor else None


def find_device(vendor_id: str, device_id: str) -> str | None:
    device = get_database().find_device(vendor_id, device_id)
    return device.name if device else None
