from . import ReplayStatus, get_event_list, replay_log
from .event_log import EventRecord
import tpm_attest.logging as logging

logger = logging.getLogger('support_rim')


class SupportRim:
    """
    A support RIM: the binary event log shipped alongside a base RIM.

    `pcr_hash` is refreshed each time the expected PCR list is computed so
    callers can tell whether the log contents changed between uploads.
    """

    def __init__(self, rim_bytes: bytes, file_name: str = "blank.rimel",
                 supplemental: bool = False, patch: bool = False):
        self.rim_bytes = bytes(rim_bytes)
        self.file_name = file_name
        self.supplemental = supplemental
        self.patch = patch
        self.pcr_hash: str | None = None

    def get_expected_pcr_list(self) -> list[str]:
        result = replay_log(self.rim_bytes)
        if result.status == ReplayStatus.UNREADABLE:
            logger.error("Support RIM %s has no usable event log", self.file_name)
            return []
        self.pcr_hash = result.fingerprint
        return list(result.pcrs)

    def get_event_log(self) -> list[EventRecord]:
        return get_event_list(self.rim_bytes)

    def is_base_support(self) -> bool:
        return not self.supplemental and not self.patch
