import enum


NUM_PCRS = 24

SPEC_ID_SIGNATURE = b"Spec ID Event03"
STARTUP_LOCALITY_SIGNATURE = b"StartupLocality\0"


class TpmAlgorithm(enum.IntEnum):
    # https://trustedcomputinggroup.org/resource/tcg-algorithm-registry/
    # (hash algorithms only; these are the ones an event log can carry)
    SHA1            = 0x0004
    SHA256          = 0x000B
    SHA384          = 0x000C
    SHA512          = 0x000D
    SM3_256         = 0x0012
    SHA3_256        = 0x0027
    SHA3_384        = 0x0028
    SHA3_512        = 0x0029

    @property
    def hashlib_name(self) -> str:
        return _HASHLIB_NAMES[self]

    @staticmethod
    def lookup(alg_id: int) -> 'TpmAlgorithm | int':
        try:
            return TpmAlgorithm(alg_id)
        except ValueError:
            return alg_id

    @staticmethod
    def from_name(name: str) -> 'TpmAlgorithm':
        return TpmAlgorithm[name.upper().replace("-", "_")]


_HASHLIB_NAMES = {
    TpmAlgorithm.SHA1:      "sha1",
    TpmAlgorithm.SHA256:    "sha256",
    TpmAlgorithm.SHA384:    "sha384",
    TpmAlgorithm.SHA512:    "sha512",
    TpmAlgorithm.SM3_256:   "sm3",
    TpmAlgorithm.SHA3_256:  "sha3_256",
    TpmAlgorithm.SHA3_384:  "sha3_384",
    TpmAlgorithm.SHA3_512:  "sha3_512",
}


class TpmEventType(enum.IntEnum):
    # BIOS events <https://www.trustedcomputinggroup.org/wp-content/uploads/TCG_PCClientImplementation_1-21_1_00.pdf#page=98>
    PREBOOT_CERT                    = 0x00000000 # deprecated
    POST_CODE                       = 0x00000001
    UNUSED                          = 0x00000002 # reserved
    NO_ACTION                       = 0x00000003 # noextend
    SEPARATOR                       = 0x00000004 # BIOS: extend 0-7
    ACTION                          = 0x00000005
    EVENT_TAG                       = 0x00000006
    S_CRTM_CONTENTS                 = 0x00000007
    S_CRTM_VERSION                  = 0x00000008
    CPU_MICROCODE                   = 0x00000009
    PLATFORM_CONFIG_FLAGS           = 0x0000000A
    TABLE_OF_DEVICES                = 0x0000000B
    COMPACT_HASH                    = 0x0000000C
    IPL                             = 0x0000000D
    IPL_PARTITION_DATA              = 0x0000000E
    NONHOST_CODE                    = 0x0000000F
    NONHOST_CONFIG                  = 0x00000010
    NONHOST_INFO                    = 0x00000011
    OMIT_BOOT_DEVICE_EVENTS         = 0x00000012

    # UEFI events
    # https://trustedcomputinggroup.org/wp-content/uploads/TCG_EFI_Platform_1_22_Final_-v15.pdf#page=32
    EFI_EVENT_BASE                  = 0x80000000
    EFI_VARIABLE_DRIVER_CONFIG      = 0x80000001
    EFI_VARIABLE_BOOT               = 0x80000002
    EFI_BOOT_SERVICES_APPLICATION   = 0x80000003
    EFI_BOOT_SERVICES_DRIVER        = 0x80000004
    EFI_RUNTIME_SERVICES_DRIVER     = 0x80000005
    EFI_GPT_EVENT                   = 0x80000006
    EFI_ACTION                      = 0x80000007
    EFI_PLATFORM_FIRMWARE_BLOB      = 0x80000008
    EFI_HANDOFF_TABLES              = 0x80000009
    EFI_PLATFORM_FIRMWARE_BLOB2     = 0x8000000A
    EFI_HANDOFF_TABLES2             = 0x8000000B
    EFI_VARIABLE_BOOT2              = 0x8000000C
    EFI_HCRTM_EVENT                 = 0x80000010
    EFI_VARIABLE_AUTHORITY          = 0x800000E0
    EFI_SPDM_FIRMWARE_BLOB          = 0x800000E1
    EFI_SPDM_FIRMWARE_CONFIG        = 0x800000E2

    @staticmethod
    def lookup(code: int) -> 'TpmEventType | int':
        try:
            return TpmEventType(code)
        except ValueError:
            return code


# Events whose digest is taken over the event data itself, so the log
# can be checked against its own contents.
CONTENT_MEASURED_EVENTS = frozenset({
    TpmEventType.SEPARATOR,
    TpmEventType.S_CRTM_VERSION,
    TpmEventType.EFI_VARIABLE_DRIVER_CONFIG,
    TpmEventType.EFI_GPT_EVENT,
})


def algorithm_name(alg: 'TpmAlgorithm | int') -> str:
    return alg.name.lower() if isinstance(alg, TpmAlgorithm) else f"0x{alg:04x}"


def event_type_name(event_type: 'TpmEventType | int') -> str:
    if isinstance(event_type, TpmEventType):
        return f"EV_{event_type.name}"
    return f"EV_UNKNOWN_0x{event_type:08x}"
