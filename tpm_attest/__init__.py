#!/usr/bin/env python3
import enum
import hashlib
from dataclasses import dataclass
from functools import cached_property

from .event_log import EventLog, EventRecord, LogFormat, MalformedLog, SpecIdHeader
from .pcr_bank import PcrBank, replay_events
from .tpm_constants import NUM_PCRS, TpmAlgorithm, TpmEventType, algorithm_name
from .util import UnsupportedAlgorithm, is_supported
import tpm_attest.logging as logging

logger = logging.getLogger("tpm_attest")


class ReplayStatus(enum.Enum):
    OK = "ok"
    # the log was read, but nothing in it extended a register
    NO_MEASUREMENTS = "no-measurements"
    # the log could not be read or replayed; the PCR values are unknown
    UNREADABLE = "unreadable"


@dataclass(frozen=True)
class ReplayResult:
    status: ReplayStatus
    pcrs: tuple[str, ...] = ()
    bank: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status != ReplayStatus.UNREADABLE

    @cached_property
    def fingerprint(self) -> str | None:
        if not self.ok:
            return None
        return hashlib.sha256(b"".join(bytes.fromhex(value) for value in self.pcrs)).hexdigest()


def default_algorithm(log: EventLog) -> TpmAlgorithm:
    active = log.active_algorithms
    for alg in (TpmAlgorithm.SHA256, TpmAlgorithm.SHA1):
        if alg in active:
            return alg
    for alg in active:
        if is_supported(alg):
            return alg
    raise UnsupportedAlgorithm(active[0])


def replay_log(log_bytes: bytes, alg: TpmAlgorithm | None = None, num_pcrs: int = NUM_PCRS) -> ReplayResult:
    """
    Compute the PCR values a TPM should hold after measuring this log.

    The log is replayed for a single bank: `alg` if given, otherwise
    SHA256 when the log carries it, SHA1 failing that. Nothing is raised;
    an unreadable log or an unusable bank gives an UNREADABLE result with
    the reason in `error`.
    """
    if alg is not None:
        alg = TpmAlgorithm.lookup(alg)
    try:
        log = EventLog(log_bytes)
        if alg is None:
            alg = default_algorithm(log)
        elif alg not in log.active_algorithms:
            raise MalformedLog(0, f"log carries no {algorithm_name(alg)} digests")
        if not is_supported(alg):
            raise UnsupportedAlgorithm(alg)

        bank = replay_events(log, [alg], num_pcrs)[alg]
    except MalformedLog as e:
        logger.error("Unable to process event log: %s", e)
        return ReplayResult(ReplayStatus.UNREADABLE, error=str(e))
    except UnsupportedAlgorithm as e:
        logger.error("Unable to replay event log: %s", e)
        return ReplayResult(ReplayStatus.UNREADABLE, error=str(e))

    status = ReplayStatus.NO_MEASUREMENTS if all(pcr.count == 0 for pcr in bank.pcrs) else ReplayStatus.OK
    return ReplayResult(status, tuple(bank.values()), algorithm_name(alg))


def get_expected_pcr_values(log_bytes: bytes, alg: TpmAlgorithm | None = None) -> list[str]:
    """
    Expected PCR values as hex strings, one per register.

    An empty list means the values could not be determined, not that the
    device made no measurements. Use replay_log() to tell the cases apart.
    """
    return list(replay_log(log_bytes, alg).pcrs)


def get_event_list(log_bytes: bytes) -> list[EventRecord]:
    try:
        return EventLog(log_bytes).events()
    except MalformedLog as e:
        logger.error("Unable to process event log: %s", e)
        return []


__all__ = [
    "EventLog", "EventRecord", "LogFormat", "MalformedLog", "SpecIdHeader",
    "PcrBank", "replay_events",
    "TpmAlgorithm", "TpmEventType", "UnsupportedAlgorithm",
    "ReplayStatus", "ReplayResult", "replay_log", "get_expected_pcr_values", "get_event_list",
]
