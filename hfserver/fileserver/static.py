import os
import html
import stat
import mimetypes
import posixpath
import urllib.parse

from hfserver.errors import NotFound, Forbidden, AccessError


def clean_path(url_path):
    """
    Normalizes a URL path rooted at '/', so '..' segments can never climb
    above the root. 'a/../../b' becomes '/b'.
    """
    cleaned = posixpath.normpath('/' + url_path)
    # normpath keeps a leading '//' intact
    return '/' + cleaned.lstrip('/')


def resolve_static(directory, url_path):
    """
    Maps the remainder of a /files/ URL onto the served directory.

    Returns:
        tuple: (filesystem path, os.stat_result)
    """
    cleaned = clean_path(url_path)
    fs_path = os.path.join(directory, *[p for p in cleaned.split('/') if p])
    try:
        st = os.stat(fs_path)
    except (FileNotFoundError, NotADirectoryError) as e:
        raise NotFound("Static path not found: %s" % fs_path, innerexception=e)
    except PermissionError as e:
        raise Forbidden("Static path not accessible: %s" % fs_path, innerexception=e)
    except OSError as e:
        raise AccessError("Error accessing static path %s" % fs_path, innerexception=e, message="500 Internal Server Error")
    return fs_path, st


def get_mime_type(filepath):
    """
    Get the MIME type for a file.

    Args:
        filepath (str): Path to the file

    Returns:
        str: MIME type
    """
    mime_type, encoding = mimetypes.guess_type(filepath)
    if mime_type is None:
        return 'application/octet-stream'
    if mime_type.startswith('text/') or mime_type in ('application/javascript', 'application/json'):
        return mime_type + '; charset=utf-8'
    return mime_type


def is_dir(st):
    return stat.S_ISDIR(st.st_mode)


def render_directory_index(dir_path):
    """Bare bones listing of a directory reached through /files/."""
    try:
        with os.scandir(dir_path) as it:
            entries = sorted(it, key=lambda e: e.name)
    except PermissionError as e:
        raise Forbidden("Static directory not readable: %s" % dir_path, innerexception=e)
    except OSError as e:
        raise AccessError("Error reading directory %s" % dir_path, innerexception=e, message="Error reading directory")

    lines = ['<!doctype html>', '<meta name="viewport" content="width=device-width">', '<pre>']
    for entry in entries:
        name = entry.name
        try:
            if entry.is_dir():
                name += '/'
        except OSError:
            pass
        href = urllib.parse.quote(name)
        lines.append('<a href="%s">%s</a>' % (html.escape(href), html.escape(name)))
    lines.append('</pre>')
    return '\n'.join(lines) + '\n'
