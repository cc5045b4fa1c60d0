from .tpm_constants import TpmAlgorithm
from .util import new_hash, to_hex


class PcrRegister:
    def __init__(self, data: bytes, alg: TpmAlgorithm = TpmAlgorithm.SHA1):
        self._data = data
        self._alg = alg
        self._count = 0

    @property
    def count(self):
        return self._count

    @property
    def data(self):
        return self._data

    @property
    def alg(self):
        return self._alg

    def __str__(self):
        return to_hex(self._data)

    def __repr__(self):
        return f"PcrRegister({self._alg.name}, {self}, count={self._count})"

    def __eq__(self, other):
        if not isinstance(other, PcrRegister):
            return NotImplemented
        return self._data == other.data

    def extend_with_hash(self, extend_value: bytes):
        self._data = new_hash(self._alg, self._data + extend_value).digest()
        self._count = self._count + 1

    def extend_with_data(self, extend_data: bytes):
        extend_value = new_hash(self._alg, extend_data).digest()
        self.extend_with_hash(extend_value)
