import enum
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Iterator, Mapping

from .binary_reader import BinaryReader
from .tpm_constants import (TpmAlgorithm, TpmEventType, SPEC_ID_SIGNATURE, CONTENT_MEASURED_EVENTS,
                            algorithm_name, event_type_name)
from .util import UnsupportedAlgorithm, digest_size, hash_bytes, hexdump, is_supported, to_hex
import tpm_attest.logging as logging

logger = logging.getLogger('event_log')

# Reference
# TCG PC Client Platform Firmware Profile, section 10.2 (TCG_PCClientPCREvent, TCG_PCR_EVENT2)
# https://trustedcomputinggroup.org/resource/pc-client-specific-platform-firmware-profile-specification/

_SHA1_DIGEST_SIZE = 20


class MalformedLog(ValueError):
    def __init__(self, offset: int, reason: str):
        super().__init__(f"malformed event log at offset {offset}: {reason}")
        self.offset = offset
        self.reason = reason


class LogFormat(enum.Enum):
    LEGACY_SHA1 = "legacy-sha1"
    CRYPTO_AGILE = "crypto-agile"


@dataclass(frozen=True)
class SpecIdHeader:
    """TCG_EfiSpecIDEvent, carried by the first record of a crypto-agile log."""
    signature: bytes
    platform_class: int
    spec_version_minor: int
    spec_version_major: int
    spec_errata: int
    uintn_size: int
    algorithms: tuple[tuple[TpmAlgorithm | int, int], ...]
    vendor_info: bytes

    @property
    def digest_sizes(self) -> dict[TpmAlgorithm | int, int]:
        return dict(self.algorithms)

    @classmethod
    def parse(cls, data: bytes) -> 'SpecIdHeader':
        with BinaryReader(data) as fh:
            signature = fh.read(16)
            platform_class = fh.read_u32()
            spec_version_minor = fh.read_u8()
            spec_version_major = fh.read_u8()
            spec_errata = fh.read_u8()
            uintn_size = fh.read_u8()
            num_algorithms = fh.read_u32()
            algorithms = []
            for i in range(num_algorithms):
                # struct TCG_EfiSpecIdEventAlgorithmSize
                alg_id = TpmAlgorithm.lookup(fh.read_u16())
                algorithms.append((alg_id, fh.read_u16()))
            vendor_info = fh.read(fh.read_u8())
        return cls(signature, platform_class, spec_version_minor, spec_version_major,
                   spec_errata, uintn_size, tuple(algorithms), vendor_info)


@dataclass(frozen=True)
class EventRecord:
    sequence_number: int
    pcr_index: int
    event_type: TpmEventType | int
    digests: Mapping[TpmAlgorithm | int, bytes] = field(hash=False)
    event_data: bytes
    offset: int = 0

    def __post_init__(self):
        object.__setattr__(self, "digests", MappingProxyType(dict(self.digests)))

    def digest(self, alg: TpmAlgorithm | int) -> bytes | None:
        return self.digests.get(alg)

    def is_spec_id_event(self) -> bool:
        return self.sequence_number == 0 and self.pcr_index == 0 and \
            self.event_type == TpmEventType.NO_ACTION and self.event_data[:15] == SPEC_ID_SIGNATURE

    def to_json(self) -> dict:
        return {
            "EventNum": self.sequence_number,
            "PCRIndex": self.pcr_index,
            "EventType": event_type_name(self.event_type),
            "DigestCount": len(self.digests),
            "Digests": [{"AlgorithmId": algorithm_name(alg), "Digest": to_hex(value)}
                        for alg, value in self.digests.items()],
            "EventSize": len(self.event_data),
            # same cut-off as tpm2_eventlog for raw event output
            "Event": to_hex(self.event_data[:1024]),
        }

    def show(self):
        logger.verbose("\033[1mPCR %d -- Event <%s>\033[m", self.pcr_index, event_type_name(self.event_type))
        for alg, value in self.digests.items():
            logger.verbose("  %-8s %s", algorithm_name(alg), to_hex(value))
        for i in hexdump(self.event_data, 64):
            logger.debug(i)


def _read_pcr_event(fh: BinaryReader, seq: int, offset: int) -> EventRecord:
    # section 5.1, SHA1 Event Log Entry Format
    pcr_idx = fh.read_u32()
    event_type = TpmEventType.lookup(fh.read_u32())
    digests = {TpmAlgorithm.SHA1: fh.read(_SHA1_DIGEST_SIZE)}
    event_size = fh.read_u32()
    data = fh.read(event_size)
    return EventRecord(seq, pcr_idx, event_type, digests, data, offset)


def _read_pcr_event2(fh: BinaryReader, seq: int, offset: int, digest_sizes: dict) -> EventRecord:
    # section 5.2, Crypto Agile Log Entry Format
    pcr_idx = fh.read_u32()
    event_type = TpmEventType.lookup(fh.read_u32())
    digest_count = fh.read_u32()
    digests = {}
    for i in range(digest_count):
        alg_id = TpmAlgorithm.lookup(fh.read_u16())
        try:
            size = digest_sizes[alg_id]
        except KeyError:
            raise MalformedLog(offset, f"digest algorithm {algorithm_name(alg_id)} "
                                       f"is not declared in the Spec ID header") from None
        digests[alg_id] = fh.read(size)
    event_size = fh.read_u32()
    data = fh.read(event_size)
    return EventRecord(seq, pcr_idx, event_type, digests, data, offset)


def _check_header(header: SpecIdHeader):
    if not header.algorithms:
        raise MalformedLog(0, "Spec ID header lists no digest algorithms")
    for alg_id, size in header.algorithms:
        try:
            expected = digest_size(alg_id)
        except UnsupportedAlgorithm:
            continue
        if size != expected:
            raise MalformedLog(0, f"Spec ID header declares {size}-byte {algorithm_name(alg_id)} "
                                  f"digests (expected {expected})")


class EventLog:
    """
    A parsed view over a binary TCG event log.

    Iterating yields EventRecord objects in log order. Each iteration
    starts over from the beginning of the buffer, so the log can be walked
    any number of times. Records are decoded on demand; MalformedLog is
    raised at the first record that cannot be read.

    The log variant is decided from the first record: if it is the
    "Spec ID Event03" no-action event the remainder of the log uses the
    crypto-agile layout with the algorithms that event declares, otherwise
    every record uses the legacy SHA1 layout.
    """

    def __init__(self, buf: bytes):
        self._buf = bytes(buf)
        self.header: SpecIdHeader | None = None
        self.format = LogFormat.LEGACY_SHA1

        if not self._buf:
            raise MalformedLog(0, "empty event log")

        with BinaryReader(self._buf) as fh:
            try:
                first = _read_pcr_event(fh, 0, 0)
            except (EOFError, IOError) as e:
                raise MalformedLog(0, str(e)) from e

        if first.is_spec_id_event():
            try:
                self.header = SpecIdHeader.parse(first.event_data)
            except (EOFError, IOError) as e:
                raise MalformedLog(0, f"unreadable Spec ID header: {e}") from e
            _check_header(self.header)
            self.format = LogFormat.CRYPTO_AGILE
            logger.verbose("crypto-agile log, algorithms: %s",
                           ", ".join(algorithm_name(alg) for alg, _ in self.header.algorithms))

    @property
    def active_algorithms(self) -> tuple[TpmAlgorithm | int, ...]:
        if self.header is None:
            return (TpmAlgorithm.SHA1,)
        return tuple(alg for alg, _ in self.header.algorithms)

    def __iter__(self) -> Iterator[EventRecord]:
        digest_sizes = self.header.digest_sizes if self.header else None

        with BinaryReader(self._buf) as fh:
            seq = 0
            while fh.remaining() > 0:
                offset = fh.tell()
                try:
                    if seq == 0 or digest_sizes is None:
                        record = _read_pcr_event(fh, seq, offset)
                    else:
                        record = _read_pcr_event2(fh, seq, offset, digest_sizes)
                except (EOFError, IOError) as e:
                    raise MalformedLog(offset, f"truncated record #{seq}: {e}") from e
                yield record
                seq += 1

    def events(self) -> list[EventRecord]:
        return list(self)

    def validate(self) -> list[tuple[int, str, str]]:
        """
        Check the events whose digest covers their own event data.

        Returns (sequence number, event type, algorithm) for every digest
        that does not match; digests in algorithms without a local hash
        implementation are not checked.
        """
        failures = []
        for event in self:
            if event.event_type not in CONTENT_MEASURED_EVENTS:
                continue
            for alg, value in event.digests.items():
                if not is_supported(alg):
                    continue
                if hash_bytes(event.event_data, alg) != value:
                    failures.append((event.sequence_number, event_type_name(event.event_type),
                                     algorithm_name(alg)))
        return failures
