import sys

import atheris
from helpers import EnhancedDataProvider

with atheris.instrument_imports():
    from multipart_save.exceptions import FieldHeaderError
    from multipart_save.fields import FieldHeaders, parse_options_header


def TestOneInput(data: bytes) -> None:
    fdp = EnhancedDataProvider(data)
    if fdp.ConsumeBool():
        value, params = parse_options_header(fdp.ConsumeRandomBytes())
        assert isinstance(value, str)
        assert all(isinstance(k, str) and isinstance(v, str) for k, v in params.items())
        return

    try:
        FieldHeaders.parse({"Content-Disposition": fdp.ConsumeRandomString()})
    except FieldHeaderError:
        return


def main():
    atheris.Setup(sys.argv, TestOneInput)
    atheris.Fuzz()


if __name__ == "__main__":
    main()
