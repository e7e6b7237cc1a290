"""Reading and writing zip archives."""

import lzma
import os
import shutil
import tempfile
import zipfile
import zlib
from pathlib import Path

from .errors import ArchiveOpenError, ArchiveWriteError

ZIP_EXTENSIONS = (".cbz", ".zip")


def is_archive(path):
    """Check for an existing file with a zip archive extension."""
    path = Path(path)
    return path.suffix.lower() in ZIP_EXTENSIONS and path.is_file()


def output_path(path, target):
    """Path of the converted archive: comic.cbz becomes comic.<target>.cbz."""
    path = Path(path)
    return path.with_name(f"{path.stem}.{target.ext}{path.suffix}")


def already_converted(path, target):
    """An archive was converted if its name carries the target suffix or its output exists."""
    path = Path(path)
    conversion_ending = f".{target.ext}{path.suffix}".lower()
    return path.name.lower().endswith(conversion_ending) or output_path(path, target).exists()


class Entry:
    """A single file (or directory) inside an archive."""

    def __init__(self, info, data):
        self.info = info
        self.data = data

    @property
    def name(self):
        return self.info.filename

    def __repr__(self):
        return f"Entry({self.name!r}, {len(self.data)} bytes)"


class ArchiveReader:
    """Opens a zip archive read-only and yields its entries in order."""

    def __init__(self, path):
        self.path = Path(path)
        self._zip = None

    def __enter__(self):
        try:
            self._zip = zipfile.ZipFile(self.path, 'r')
        except (zipfile.BadZipFile, OSError) as e:
            raise ArchiveOpenError(self.path, e) from e
        return self

    def __exit__(self, exc_type, exc, tb):
        self._zip.close()
        self._zip = None
        return False

    def infos(self):
        return self._zip.infolist()

    def names(self):
        return [info.filename for info in self.infos()]

    def entries(self):
        for info in self.infos():
            try:
                data = self._zip.read(info)
            except (zipfile.BadZipFile, zlib.error, lzma.LZMAError, EOFError,
                    NotImplementedError, RuntimeError, OSError) as e:
                raise ArchiveOpenError(self.path, f"{info.filename}: {e}") from e
            yield Entry(info, data)


def read_archive(path):
    """Read every entry of the archive at path into memory."""
    with ArchiveReader(path) as reader:
        return list(reader.entries())


class ArchiveWriter:
    """Writes a new zip archive, which only appears at its path once complete.

    Entries go to a temporary file in the destination directory. On success it is
    renamed into place, with the permissions of the file given as like, and on any
    failure it is removed.
    """

    def __init__(self, path, like=None):
        self.path = Path(path)
        self.like = like
        self._tmp_path = None
        self._zip = None

    def __enter__(self):
        try:
            fd, tmp = tempfile.mkstemp(prefix=f".{self.path.name}.", suffix=".part", dir=self.path.parent)
            os.close(fd)
            self._tmp_path = Path(tmp)
            self._zip = zipfile.ZipFile(self._tmp_path, 'w')
        except OSError as e:
            self._discard()
            raise ArchiveWriteError(self.path, e) from e
        return self

    def add(self, entry, data=None, name=None):
        """Copy entry into the new archive, optionally with new content under a new name.

        Timestamps and attributes come from the source entry so that the same input
        always gives the same archive. Replaced content is stored uncompressed,
        untouched entries keep their compression method.
        """
        source = entry.info
        info = zipfile.ZipInfo(name or source.filename, date_time=source.date_time)
        info.create_system = source.create_system
        info.external_attr = source.external_attr
        info.comment = source.comment
        if data is None:
            data = entry.data
            info.compress_type = source.compress_type
        else:
            info.compress_type = zipfile.ZIP_STORED
        try:
            self._zip.writestr(info, data)
        except (OSError, ValueError, NotImplementedError, RuntimeError) as e:
            raise ArchiveWriteError(self.path, e) from e

    def __exit__(self, exc_type, exc, tb):
        if exc_type is not None:
            self._discard()
            return False
        try:
            self._zip.close()
            if self.like is not None:
                shutil.copymode(self.like, self._tmp_path)
            os.replace(self._tmp_path, self.path)
        except OSError as e:
            self._discard()
            raise ArchiveWriteError(self.path, e) from e
        return False

    def _discard(self):
        if self._zip is not None:
            try:
                self._zip.close()
            except (OSError, ValueError):
                pass
            self._zip = None
        if self._tmp_path is not None and self._tmp_path.exists():
            self._tmp_path.unlink()


def write_archive(path, items, like=None):
    """Write (entry, data, name) triples to a new archive; data and name may be None."""
    with ArchiveWriter(path, like) as writer:
        for entry, data, name in items:
            writer.add(entry, data, name)
