import zipfile
from pathlib import Path

import pytest

from cbz_in.archive import (
    ArchiveReader,
    ArchiveWriter,
    already_converted,
    is_archive,
    output_path,
    read_archive,
    write_archive,
)
from cbz_in.errors import ArchiveOpenError
from cbz_in.formats import ImageFormat
from conftest import FIXED_TIME, make_zip, zip_contents


def test_read_archive_keeps_order_and_bytes(tmp_path: Path):
    src = make_zip(tmp_path / "c.cbz", [("b.png", b"B"), ("a.jpg", b"A"), ("z/notes.txt", b"N")])
    entries = read_archive(src)
    assert [e.name for e in entries] == ["b.png", "a.jpg", "z/notes.txt"]
    assert [e.data for e in entries] == [b"B", b"A", b"N"]


def test_read_archive_rejects_non_zip(tmp_path: Path):
    bogus = tmp_path / "bogus.cbz"
    bogus.write_bytes(b"not a zip at all")
    with pytest.raises(ArchiveOpenError):
        read_archive(bogus)
    with pytest.raises(ArchiveOpenError):
        read_archive(tmp_path / "missing.cbz")


def test_is_archive(tmp_path: Path):
    cbz = make_zip(tmp_path / "a.CBZ", [])
    other = tmp_path / "a.rar"
    other.write_bytes(b"")
    assert is_archive(cbz)
    assert not is_archive(other)
    assert not is_archive(tmp_path / "missing.zip")
    assert not is_archive(tmp_path)


def test_output_path_and_already_converted(tmp_path: Path):
    src = make_zip(tmp_path / "comic.cbz", [])
    assert output_path(src, ImageFormat.AVIF) == tmp_path / "comic.avif.cbz"
    assert output_path(tmp_path / "x.zip", ImageFormat.JXL) == tmp_path / "x.jxl.zip"

    assert not already_converted(src, ImageFormat.AVIF)
    assert already_converted(tmp_path / "comic.avif.cbz", ImageFormat.AVIF)
    make_zip(tmp_path / "comic.webp.cbz", [])
    assert already_converted(src, ImageFormat.WEBP)


def test_writer_copies_metadata_and_is_deterministic(tmp_path: Path):
    src = make_zip(tmp_path / "c.cbz", [("dir/", b""), ("dir/p.jpg", b"jpeg"), ("t.txt", b"text")])

    def write(dest):
        with ArchiveReader(src) as reader:
            items = [
                (e, b"new", "dir/p.avif") if e.name == "dir/p.jpg" else (e, None, None)
                for e in reader.entries()
            ]
            write_archive(dest, items, like=src)

    write(tmp_path / "one.cbz")
    write(tmp_path / "two.cbz")

    assert (tmp_path / "one.cbz").read_bytes() == (tmp_path / "two.cbz").read_bytes()
    with zipfile.ZipFile(tmp_path / "one.cbz") as zf:
        infos = zf.infolist()
        assert [i.filename for i in infos] == ["dir/", "dir/p.avif", "t.txt"]
        assert all(i.date_time == FIXED_TIME for i in infos)
        assert infos[1].compress_type == zipfile.ZIP_STORED
        assert infos[2].compress_type == zipfile.ZIP_DEFLATED
    assert zip_contents(tmp_path / "one.cbz")["t.txt"] == b"text"


def test_writer_leaves_nothing_behind_on_failure(tmp_path: Path):
    src = make_zip(tmp_path / "c.cbz", [("p.jpg", b"jpeg")])
    dest = tmp_path / "c.avif.cbz"

    with pytest.raises(RuntimeError):
        with ArchiveReader(src) as reader, ArchiveWriter(dest) as writer:
            for entry in reader.entries():
                writer.add(entry)
            raise RuntimeError("interrupted")

    assert not dest.exists()
    assert sorted(p.name for p in tmp_path.iterdir()) == ["c.cbz"]
