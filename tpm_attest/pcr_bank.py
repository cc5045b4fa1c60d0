from typing import Iterable

from .event_log import EventRecord
from .pcr_register import PcrRegister
from .tpm_constants import NUM_PCRS, STARTUP_LOCALITY_SIGNATURE, TpmAlgorithm, TpmEventType, algorithm_name
from .util import UnsupportedAlgorithm, digest_size, to_hex
import tpm_attest.logging as logging

logger = logging.getLogger('pcr_bank')


class PcrBank:
    def __init__(self, alg: TpmAlgorithm = TpmAlgorithm.SHA1, num_pcrs: int = NUM_PCRS):
        self.num_pcrs = num_pcrs
        self.hash_alg = alg
        self.pcr_size = digest_size(alg)
        logger.debug("Instantiated %s bank with register size %d", algorithm_name(alg), self.pcr_size)
        self.pcrs = [PcrRegister(self.seed(idx), alg) for idx in range(num_pcrs)]

    def seed(self, idx: int) -> bytes:
        # PCRs 17-22 belong to the dynamic root of trust and reset to all-ones
        return (b"\xFF" if (17 <= idx <= 22) else b"\x00") * self.pcr_size

    def set_startup_locality(self, locality: int):
        if self.pcrs[0].count:
            logger.warning("StartupLocality event found after PCR 0 was extended, ignoring it")
            return
        self.pcrs[0] = PcrRegister(b"\x00" * (self.pcr_size - 1) + bytes([locality]), self.hash_alg)

    def extend(self, idx: int, extend_value: bytes):
        if len(extend_value) != self.pcr_size:
            raise ValueError(f"{algorithm_name(self.hash_alg)} digest must be {self.pcr_size} bytes, "
                             f"got {len(extend_value)}")
        self.pcrs[idx].extend_with_hash(extend_value)

    def values(self) -> list[str]:
        return [str(pcr) for pcr in self.pcrs]

    def possibly_unused(self) -> bool:
        # The first 8 PCRs always have an EV_SEPARATOR logged to them at the very least.
        # If none of them saw an event the bank is most likely not in use.
        return all(x.count == 0 for x in self.pcrs[:8])

    def __eq__(self, other):
        if not isinstance(other, PcrBank):
            return NotImplemented
        if self.num_pcrs != other.num_pcrs or self.hash_alg != other.hash_alg:
            return False

        return all(pcr1 == pcr2 for pcr1, pcr2 in zip(self.pcrs, other.pcrs))

    def compare(self, reference: dict[int, bytes]) -> list[int]:
        """Return the indices whose computed value differs from the reference."""
        return [idx for idx, value in sorted(reference.items())
                if not 0 <= idx < self.num_pcrs or self.pcrs[idx].data != value]

    def show_compare(self, reference: dict[int, bytes]):
        mismatched = set(self.compare(reference))
        logger.info("Hash algorithm: %s", algorithm_name(self.hash_alg))
        logger.info("           %-*s | %-*s", self.pcr_size * 2, "REFERENCE", self.pcr_size * 2, "COMPUTED")
        for idx, value in sorted(reference.items()):
            computed = str(self.pcrs[idx]) if 0 <= idx < self.num_pcrs else "-"
            if idx in mismatched:
                logger.warning("PCR %2d: %-*s | %-*s <BAD>", idx, self.pcr_size * 2, to_hex(value),
                               self.pcr_size * 2, computed)
            else:
                logger.info("   PCR %2d: %-*s | %-*s +", idx, self.pcr_size * 2, to_hex(value),
                            self.pcr_size * 2, computed)


def _startup_locality(event: EventRecord) -> int | None:
    data = event.event_data
    if event.pcr_index == 0 and data.startswith(STARTUP_LOCALITY_SIGNATURE) \
            and len(data) > len(STARTUP_LOCALITY_SIGNATURE):
        return data[len(STARTUP_LOCALITY_SIGNATURE)]
    return None


def replay_events(events: Iterable[EventRecord], algorithms: Iterable[TpmAlgorithm | int],
                  num_pcrs: int = NUM_PCRS) -> dict[TpmAlgorithm, PcrBank]:
    """
    Replay the TPM extend operation for every event, in log order.

    One bank is produced per algorithm that has a local hash
    implementation; algorithms that don't are logged and left out, the
    other banks are still replayed. Only the digests belonging to the
    requested algorithms are used.
    """
    banks = {}
    for alg in algorithms:
        try:
            banks[alg] = PcrBank(alg, num_pcrs)
        except UnsupportedAlgorithm as e:
            logger.error("%s, the bank will not be replayed", e)

    verbose_pcr = logger.isEnabledFor(logging.VERBOSE)

    for event in events:
        if verbose_pcr:
            event.show()

        if event.event_type == TpmEventType.NO_ACTION:
            locality = _startup_locality(event)
            if locality is not None:
                logger.verbose("startup locality %d, adjusting PCR 0 initial value", locality)
                for bank in banks.values():
                    bank.set_startup_locality(locality)
            # no-action events are never extended, this includes the Spec ID event
            continue

        # events for the Windows virtual PCR[-1] and the like
        if not 0 <= event.pcr_index < num_pcrs:
            logger.verbose("event #%d targets PCR %d, skipping", event.sequence_number, event.pcr_index)
            continue

        for alg, bank in banks.items():
            extend_value = event.digest(alg)
            if extend_value is None:
                logger.verbose("event #%d does not update the %s bank", event.sequence_number,
                               algorithm_name(alg))
                continue
            bank.extend(event.pcr_index, extend_value)
            logger.verbose("--> after event #%d, %s PCR %d contains value %s", event.sequence_number,
                           algorithm_name(alg), event.pcr_index, bank.pcrs[event.pcr_index])

    return banks
