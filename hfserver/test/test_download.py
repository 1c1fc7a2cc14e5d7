"""Tests for download preparation and the /files/ path mapping."""

import io
import os

import pytest

from hfserver.errors import NotFound, NotAFile, InvalidPath
from hfserver.fileserver.download import prepare_download, content_disposition, iter_file
from hfserver.fileserver.static import clean_path, resolve_static, get_mime_type, render_directory_index


class TestPrepareDownload:

    def test_regular_file(self, served_dir):
        (served_dir / 'a.txt').write_bytes(b'12345')
        safe_path, st = prepare_download(str(served_dir), 'a.txt')
        assert safe_path == os.path.join(str(served_dir), 'a.txt')
        assert st.st_size == 5

    def test_missing(self, served_dir):
        with pytest.raises(NotFound) as excinfo:
            prepare_download(str(served_dir), 'ghost.txt')
        assert excinfo.value.status_code == 404
        assert excinfo.value.message == '404 page not found'

    def test_directory(self, served_dir):
        (served_dir / 'sub').mkdir()
        with pytest.raises(NotAFile) as excinfo:
            prepare_download(str(served_dir), 'sub')
        assert excinfo.value.message == 'Cannot download a directory'

    def test_traversal(self, served_dir):
        with pytest.raises(InvalidPath):
            prepare_download(str(served_dir), '../etc/passwd')


class TestDownloadHelpers:

    def test_content_disposition(self):
        assert content_disposition('a.txt') == b'attachment; filename="a.txt"'
        assert content_disposition('we"ird\r\n.txt') == b'attachment; filename="we\\"ird.txt"'

    def test_iter_file_chunks(self):
        fh = io.BytesIO(b'abcdefghij')
        assert list(iter_file(fh, chunk_size=4)) == [b'abcd', b'efgh', b'ij']

    def test_iter_file_limit(self):
        fh = io.BytesIO(b'abcdefghij')
        assert b''.join(iter_file(fh, chunk_size=3, limit=5)) == b'abcde'


class TestStatic:

    @pytest.mark.parametrize('url_path,expected', [
        ('', '/'),
        ('a/b.txt', '/a/b.txt'),
        ('a/../../b', '/b'),
        ('../../../etc/passwd', '/etc/passwd'),
        ('//x', '/x'),
    ])
    def test_clean_path(self, url_path, expected):
        assert clean_path(url_path) == expected

    def test_resolve_stays_inside(self, served_dir):
        (served_dir / 'passwd').write_bytes(b'not the real one')
        fs_path, st = resolve_static(str(served_dir), '../../passwd')
        assert fs_path == os.path.join(str(served_dir), 'passwd')

    def test_resolve_missing(self, served_dir):
        with pytest.raises(NotFound):
            resolve_static(str(served_dir), 'nothing/here')

    def test_mime_types(self):
        assert get_mime_type('x.html') == 'text/html; charset=utf-8'
        assert get_mime_type('x.png') == 'image/png'
        assert get_mime_type('x.unknownext') == 'application/octet-stream'

    def test_directory_index(self, served_dir):
        (served_dir / 'b.txt').write_bytes(b'')
        (served_dir / 'a dir').mkdir()
        page = render_directory_index(str(served_dir))
        assert '<a href="a%20dir/">a dir/</a>' in page
        assert page.index('a dir/') < page.index('b.txt')
