"""Tests for the delete form handling."""

import pytest

from hfserver.errors import MalformedForm
from hfserver.fileserver.delete import delete_files, parse_form, parse_qs_strict


class TestDeleteFiles:

    def test_missing_files_do_not_stop_batch(self, served_dir):
        (served_dir / 'a.txt').write_bytes(b'a')
        (served_dir / 'c.txt').write_bytes(b'c')

        removed = delete_files(str(served_dir), ['a.txt', 'b.txt', 'c.txt'])

        assert removed == 2
        assert list(served_dir.iterdir()) == []

    def test_traversal_skipped(self, served_dir):
        outside = served_dir.parent / 'secret.txt'
        outside.write_bytes(b'keep me')
        (served_dir / 'x.txt').write_bytes(b'x')

        removed = delete_files(str(served_dir), ['../secret.txt', 'x.txt'])

        assert removed == 1
        assert outside.read_bytes() == b'keep me'
        assert not (served_dir / 'x.txt').exists()

    def test_names_flattened(self, served_dir):
        (served_dir / 'deep.txt').write_bytes(b'x')
        assert delete_files(str(served_dir), ['some/where/deep.txt']) == 1

    def test_directory_not_removed(self, served_dir, caplog):
        (served_dir / 'sub').mkdir()
        assert delete_files(str(served_dir), ['sub']) == 0
        assert (served_dir / 'sub').is_dir()
        assert 'Failed to delete' in caplog.text

    def test_empty_batch(self, served_dir):
        assert delete_files(str(served_dir), []) == 0


class TestParseForm:

    def test_repeated_field(self):
        assert parse_qs_strict('files=a.txt&files=b+c.txt&files=d%20e.txt') == {
            'files': ['a.txt', 'b c.txt', 'd e.txt'],
        }

    def test_query_and_body_merged(self):
        fields = parse_form('files=q.txt', b'files=b.txt', 'application/x-www-form-urlencoded; charset=utf-8')
        assert fields['files'] == ['q.txt', 'b.txt']

    def test_body_of_other_type_ignored(self):
        fields = parse_form('', b'files=b.txt', 'text/plain')
        assert fields == {}

    def test_utf8_names(self):
        fields = parse_form('', 'files=%C3%A9t%C3%A9.txt'.encode(), 'application/x-www-form-urlencoded')
        assert fields['files'] == ['été.txt']

    @pytest.mark.parametrize('body', [
        b'files=%zz',
        b'files=a%2',
        b'files=a;files=b',
        b'files=%ff',
        b'files=\xff',
    ])
    def test_malformed(self, body):
        with pytest.raises(MalformedForm) as excinfo:
            parse_form('', body, 'application/x-www-form-urlencoded')
        assert excinfo.value.status_code == 400
        assert excinfo.value.message == 'Could not parse form'
