import sys

import atheris
from helpers import EnhancedDataProvider, ShortReader

with atheris.instrument_imports():
    from multipart_save.entries import DataKind
    from multipart_save.fields import FieldHeaders, FieldList
    from multipart_save.save import RequestSaveBuilder, TextPolicy


def build_parts(fdp: EnhancedDataProvider) -> list:
    parts = []
    for i in range(fdp.ConsumeSmallInt(6)):
        name = "field%d" % i
        if fdp.ConsumeBool():
            parts.append((FieldHeaders(name), fdp.ConsumeUnicodeNoSurrogates(fdp.ConsumeSmallInt())))
        else:
            body = fdp.ConsumeBytes(fdp.ConsumeSmallInt(256))
            parts.append((FieldHeaders(name, filename=name + ".bin"), ShortReader(fdp, body)))
    return parts


def TestOneInput(data: bytes) -> None:
    fdp = EnhancedDataProvider(data)
    config = {
        "MEMORY_THRESHOLD": fdp.ConsumeSmallInt(),
        "SIZE_LIMIT": fdp.ConsumeSmallInt(128) if fdp.ConsumeBool() else None,
        "COUNT_LIMIT": fdp.ConsumeSmallInt(4) if fdp.ConsumeBool() else None,
        "TEXT_POLICY": fdp.PickValueInList(list(TextPolicy)),
    }
    res = RequestSaveBuilder(FieldList(build_parts(fdp)), config).temp()
    entries = res.into_entries()
    if entries is None:
        return

    with entries:
        for name in entries:
            for field in entries[name]:
                saved = field.data
                if config["SIZE_LIMIT"] is not None and field.headers.is_file:
                    assert saved.size <= config["SIZE_LIMIT"]
                if saved.kind != DataKind.FILE and field.headers.is_file:
                    assert saved.size <= config["MEMORY_THRESHOLD"]


def main():
    atheris.Setup(sys.argv, TestOneInput)
    atheris.Fuzz()


if __name__ == "__main__":
    main()
