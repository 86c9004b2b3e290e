import csv
import io

import pytest

import sfbackup.writer as writer_mod
from sfbackup.exceptions import ExportError
from sfbackup.writer import CsvWriter


def _read(path):
    with open(path, newline="", encoding="utf-8") as fh:
        return list(csv.reader(fh))


def test_header_and_rows_in_column_order(tmp_path):
    path = tmp_path / "Account.csv"

    with CsvWriter(str(path), ["Id", "Name", "Parent.Name", "IsDeleted"]) as w:
        w.write({"Name": "Acme, Inc.", "Id": "001", "Parent": {"Name": "Root"}, "IsDeleted": False})
        w.write({"Id": "002", "Name": 'Quote "q"', "Parent": None, "IsDeleted": True})

    assert w.rows == 2
    assert _read(path) == [
        ["Id", "Name", "Parent.Name", "IsDeleted"],
        ["001", "Acme, Inc.", "Root", "false"],
        ["002", 'Quote "q"', "", "true"],
    ]


def test_multiline_values_are_quoted(tmp_path):
    path = tmp_path / "Note.csv"

    with CsvWriter(str(path), ["Id", "Body"]) as w:
        w.write({"Id": "1", "Body": "line1\nline2"})

    assert _read(path)[1] == ["1", "line1\nline2"]
    assert '"line1\nline2"' in path.read_text(encoding="utf-8")


def test_header_only_when_no_records(tmp_path):
    path = tmp_path / "Empty.csv"

    CsvWriter(str(path), ["Id"]).close()

    assert _read(path) == [["Id"]]


def test_close_twice_is_noop(tmp_path):
    w = CsvWriter(str(tmp_path / "x.csv"), ["Id"])
    w.close()
    w.close()


def test_unwritable_path_raises_export_error(tmp_path):
    with pytest.raises(ExportError, match="failed to create file"):
        CsvWriter(str(tmp_path / "missing" / "x.csv"), ["Id"])


def test_file_closed_and_rows_kept_on_error(tmp_path):
    path = tmp_path / "Partial.csv"

    with pytest.raises(RuntimeError):
        with CsvWriter(str(path), ["Id"]) as w:
            w.write({"Id": "1"})
            raise RuntimeError("stream broke")

    assert w._file is None
    assert _read(path) == [["Id"], ["1"]]


class _FlushFailingFile(io.StringIO):
    def flush(self):
        raise OSError("No space left on device")


class _CloseFailingFile(io.StringIO):
    def close(self):
        super().close()
        raise OSError("Input/output error")


@pytest.mark.parametrize(
    "file_cls, message",
    [
        (_FlushFailingFile, "failed to flush file"),
        (_CloseFailingFile, "failed to close file"),
    ],
)
def test_flush_or_close_failure_raises_export_error(tmp_path, monkeypatch, file_cls, message):
    opened = []

    def fake_open(*args, **kwargs):
        opened.append(file_cls())
        return opened[0]

    monkeypatch.setattr(writer_mod, "open", fake_open, raising=False)
    w = CsvWriter(str(tmp_path / "x.csv"), ["Id"])
    w.write({"Id": "1"})

    with pytest.raises(ExportError, match=message):
        w.close()

    assert opened[0].closed
    assert w._file is None
