import io

import atheris


class EnhancedDataProvider(atheris.FuzzedDataProvider):
    def ConsumeRandomBytes(self) -> bytes:
        return self.ConsumeBytes(self.ConsumeIntInRange(0, self.remaining_bytes()))

    def ConsumeRandomString(self) -> str:
        return self.ConsumeUnicodeNoSurrogates(self.ConsumeIntInRange(0, self.remaining_bytes()))

    def ConsumeSmallInt(self, upper: int = 64) -> int:
        return self.ConsumeIntInRange(0, upper)


class ShortReader:
    """Hands out the fuzzed body in reads of varying length."""

    def __init__(self, fdp: EnhancedDataProvider, data: bytes) -> None:
        self.fdp = fdp
        self.stream = io.BytesIO(data)

    def read(self, n: int = -1) -> bytes:
        size = self.fdp.ConsumeIntInRange(1, 16) if self.fdp.remaining_bytes() else 16
        if n >= 0:
            size = min(size, n)
        return self.stream.read(size)
