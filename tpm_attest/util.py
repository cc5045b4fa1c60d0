import binascii
import hashlib

from .tpm_constants import TpmAlgorithm, algorithm_name


class UnsupportedAlgorithm(ValueError):
    def __init__(self, alg: TpmAlgorithm | int):
        super().__init__(f"no hash implementation for algorithm {algorithm_name(alg)}")
        self.alg = alg


def to_hex(buf):
    return binascii.hexlify(buf).decode()


def hexdump(buf, max_len=None):
    # max_len must be smaller than len(buf), if defined
    max_len = min(max_len or len(buf), len(buf))

    hexdump_contents = []
    for i in range(0, max_len, 16):
        row = buf[i:min(i+16, max_len)]
        hexs = ["%02X" % b for b in row] + ["  "] * (16 - len(row))
        text = "".join(chr(b) if 0x20 < b < 0x7f else "." for b in row)
        hexdump_contents.append(f'0x{i:08x}: {" ".join(hexs)} |{text:<16}|')

    if len(buf) > max_len:
        hexdump_contents.append(f"({len(buf) - max_len} more bytes)")

    return hexdump_contents


def new_hash(alg: TpmAlgorithm | int, buf: bytes = b""):
    if not isinstance(alg, TpmAlgorithm):
        raise UnsupportedAlgorithm(alg)
    try:
        return hashlib.new(alg.hashlib_name, buf)
    except ValueError:
        # e.g. sm3 is only present when OpenSSL provides it
        raise UnsupportedAlgorithm(alg) from None


def hash_bytes(buf: bytes, alg: TpmAlgorithm | int = TpmAlgorithm.SHA1) -> bytes:
    return new_hash(alg, buf).digest()


def digest_size(alg: TpmAlgorithm | int) -> int:
    return new_hash(alg).digest_size


def is_supported(alg: TpmAlgorithm | int) -> bool:
    try:
        new_hash(alg)
    except UnsupportedAlgorithm:
        return False
    return True
