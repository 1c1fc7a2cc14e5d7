"""Tests for writing uploaded parts into the served directory."""

import errno
import asyncio

import pytest

from hfserver.errors import WriteError, CreateError, InvalidPath
from hfserver.fileserver import upload
from hfserver.fileserver.multipart import MultipartReader
from hfserver.fileserver.upload import receive_files
from hfserver.test.conftest import BOUNDARY, build_multipart, chunk_source


class FailingFile:
    """Writable file that runs out of space after `fail_after` bytes."""

    def __init__(self, path, fail_after):
        self.fh = open(path, 'wb')
        self.fail_after = fail_after
        self.written = 0

    def write(self, data):
        if self.written + len(data) > self.fail_after:
            self.fh.write(data[:self.fail_after - self.written])
            self.fh.flush()
            raise OSError(errno.ENOSPC, 'No space left on device')
        self.written += len(data)
        return self.fh.write(data)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.fh.close()


def upload_body(body, directory, chunk_size=4096):
    reader = MultipartReader(BOUNDARY, chunk_source(body, chunk_size))
    return asyncio.run(receive_files(str(directory), reader))


class TestReceiveFiles:

    def test_files_written(self, served_dir):
        content = bytes(range(256)) * 1000
        body = build_multipart(
            files=[('files', 'data.bin', content), ('files', 'hello.txt', b'hello')],
            fields=[('note', 'ignored')],
        )
        assert upload_body(body, served_dir) == 2
        assert (served_dir / 'data.bin').read_bytes() == content
        assert (served_dir / 'hello.txt').read_bytes() == b'hello'
        assert sorted(p.name for p in served_dir.iterdir()) == ['data.bin', 'hello.txt']

    def test_only_form_fields(self, served_dir):
        body = build_multipart(fields=[('a', '1'), ('b', '2')])
        assert upload_body(body, served_dir) == 0
        assert list(served_dir.iterdir()) == []

    def test_existing_file_overwritten(self, served_dir):
        (served_dir / 'same.txt').write_bytes(b'old content that is longer')
        upload_body(build_multipart(files=[('files', 'same.txt', b'new')]), served_dir)
        assert (served_dir / 'same.txt').read_bytes() == b'new'

    def test_client_path_flattened(self, served_dir):
        upload_body(build_multipart(files=[('files', 'some/dir/flat.txt', b'x')]), served_dir)
        assert (served_dir / 'flat.txt').read_bytes() == b'x'

    def test_traversal_name_rejected(self, served_dir):
        body = build_multipart(files=[('files', '../escape.txt', b'x')])
        with pytest.raises(InvalidPath):
            upload_body(body, served_dir)
        assert not (served_dir.parent / 'escape.txt').exists()
        assert list(served_dir.iterdir()) == []

    def test_write_failure_removes_partial_file(self, served_dir, monkeypatch):
        def open_destination(path):
            if path.endswith('big.bin'):
                return FailingFile(path, fail_after=10000)
            return open(path, 'wb')

        monkeypatch.setattr(upload, 'open_destination', open_destination)
        body = build_multipart(files=[('files', 'small.txt', b'fine'), ('files', 'big.bin', b'z' * 50000)])

        with pytest.raises(WriteError) as excinfo:
            upload_body(body, served_dir, chunk_size=1024)

        assert excinfo.value.status_code == 500
        assert excinfo.value.message == 'Could not save file'
        assert not (served_dir / 'big.bin').exists()
        assert (served_dir / 'small.txt').read_bytes() == b'fine'

    def test_truncated_body_removes_partial_file(self, served_dir):
        body = build_multipart(files=[('files', 'cut.bin', b'c' * 20000)])
        with pytest.raises(WriteError):
            upload_body(body[:10000], served_dir, chunk_size=1000)
        assert not (served_dir / 'cut.bin').exists()

    def test_create_failure(self, served_dir, monkeypatch):
        def open_destination(path):
            raise PermissionError(errno.EACCES, 'Permission denied', path)

        monkeypatch.setattr(upload, 'open_destination', open_destination)
        with pytest.raises(CreateError) as excinfo:
            upload_body(build_multipart(files=[('files', 'a.txt', b'a')]), served_dir)
        assert excinfo.value.message == 'Could not create file on server'

    @pytest.mark.parametrize('filename', ['/', 'somedir/'])
    def test_name_without_base_name(self, served_dir, filename):
        body = build_multipart(files=[('files', filename, b'x')])
        with pytest.raises(CreateError) as excinfo:
            upload_body(body, served_dir)
        assert excinfo.value.status_code == 500
        assert list(served_dir.iterdir()) == []
