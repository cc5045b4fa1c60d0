import io
import struct
from typing import Any


class BinaryReader:
    def __init__(self, buf: bytes):
        self.fh = io.BytesIO(buf)

    def tell(self) -> int:
        return self.fh.tell()

    def remaining(self) -> int:
        return len(self.fh.getbuffer()) - self.fh.tell()

    def _read(self, fmt_len: str | int) -> Any:
        length = fmt_len if isinstance(fmt_len, int) else struct.calcsize(fmt_len)
        if length == 0:
            return b''
        buf = self.fh.read(length)

        if len(buf) == 0:
            raise EOFError(f"Hit EOF after 0/{length} bytes")
        elif len(buf) < length:
            raise IOError(f"Hit EOF after {len(buf)}/{length} bytes")

        if isinstance(fmt_len, str):
            data = struct.unpack_from(fmt_len, buf)
            buf = data[0] if len(data) == 1 else data
        return buf

    def read(self, size: int) -> bytes:
        return self._read(size)

    def read_u8(self) -> int:
        return self._read("<B")

    def read_u16(self) -> int:
        return self._read("<H")

    def read_u32(self) -> int:
        return self._read("<L")

    def read_u64(self) -> int:
        return self._read("<Q")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.fh.close()
