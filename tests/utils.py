import hashlib
import struct
from pathlib import Path

from tpm_attest.tpm_constants import TpmAlgorithm, TpmEventType

FIXTURES = Path(__file__).parent / "fixtures"
PCI_IDS_FIXTURE = FIXTURES / "pci.ids"

DEFAULT_ALGORITHMS = ((TpmAlgorithm.SHA1, 20), (TpmAlgorithm.SHA256, 32))


def digest(data: bytes, alg: TpmAlgorithm = TpmAlgorithm.SHA256) -> bytes:
    return hashlib.new(alg.name.lower(), data).digest()


def extend(old: bytes, value: bytes, alg: TpmAlgorithm = TpmAlgorithm.SHA256) -> bytes:
    return digest(old + value, alg)


def pcr_event(pcr: int, event_type: int, sha1_digest: bytes, data: bytes) -> bytes:
    """TCG_PCClientPCREvent, the legacy SHA1 record layout."""
    return struct.pack("<II", pcr, event_type) + sha1_digest + struct.pack("<I", len(data)) + data


def pcr_event2(pcr: int, event_type: int, digests: dict, data: bytes) -> bytes:
    """TCG_PCR_EVENT2, the crypto-agile record layout."""
    buf = struct.pack("<III", pcr, event_type, len(digests))
    for alg, value in digests.items():
        buf += struct.pack("<H", alg) + value
    return buf + struct.pack("<I", len(data)) + data


def spec_id_event(algorithms=DEFAULT_ALGORITHMS, vendor_info: bytes = b"") -> bytes:
    data = b"Spec ID Event03\0" + struct.pack("<IBBBBI", 0, 0, 2, 0, 2, len(algorithms))
    for alg, size in algorithms:
        data += struct.pack("<HH", alg, size)
    data += struct.pack("<B", len(vendor_info)) + vendor_info
    return pcr_event(0, TpmEventType.NO_ACTION, b"\0" * 20, data)


def measured_event2(pcr: int, data: bytes, event_type: int = TpmEventType.SEPARATOR,
                    algorithms=(TpmAlgorithm.SHA1, TpmAlgorithm.SHA256)) -> bytes:
    return pcr_event2(pcr, event_type, {alg: digest(data, alg) for alg in algorithms}, data)


def crypto_agile_log(*events: bytes, algorithms=DEFAULT_ALGORITHMS) -> bytes:
    return spec_id_event(algorithms) + b"".join(events)


def legacy_log(*events: bytes) -> bytes:
    return b"".join(events)
