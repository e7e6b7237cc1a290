import zipfile
from pathlib import Path

import pytest

from cbz_in import log
from cbz_in.errors import ConversionFailedError

FIXED_TIME = (2020, 1, 2, 3, 4, 6)


def make_zip(path: Path, entries) -> Path:
    """Write a zip with (name, bytes) entries in the given order."""
    with zipfile.ZipFile(path, "w", zipfile.ZIP_DEFLATED) as zf:
        for name, data in entries:
            info = zipfile.ZipInfo(name, date_time=FIXED_TIME)
            info.compress_type = zipfile.ZIP_DEFLATED
            zf.writestr(info, data)
    return path


def zip_contents(path: Path) -> dict:
    with zipfile.ZipFile(path) as zf:
        return {info.filename: zf.read(info) for info in zf.infolist()}


class FakeDispatcher:
    """Stands in for the external tools: tags the bytes with the formats involved."""

    def __init__(self, target, fail_on=()):
        self.target = target
        self.fail_on = set(fail_on)
        self.calls = []

    def required_tools(self, source):
        return []

    def check_tools(self, sources):
        list(sources)

    def convert(self, data, source):
        self.calls.append(source)
        if data in self.fail_on:
            raise ConversionFailedError("fake", "cannot decode")
        return f"{source.ext}->{self.target.ext}:".encode() + data


@pytest.fixture(autouse=True)
def reset_logging():
    log.configure()
    yield
    log.configure()
