import os
import stat

from hfserver.errors import NotFound, AccessError, NotAFile
from hfserver.fileserver.validator import validate_path

DOWNLOAD_CHUNK_SIZE = 512 * 1024


def prepare_download(directory, candidate):
    """
    Resolves a requested file name to something that can be streamed.

    Returns:
        tuple: (safe_path, os.stat_result)

    Raises:
        InvalidPath: name rejected by the traversal guard
        NotFound: no such file
        NotAFile: the name points to a directory
        AccessError: any other stat failure
    """
    safe_path, err = validate_path(directory, candidate)
    if err is not None:
        raise err

    try:
        st = os.stat(safe_path)
    except FileNotFoundError as e:
        raise NotFound("File not found: %s" % safe_path, innerexception=e)
    except OSError as e:
        raise AccessError("Error accessing file %s" % safe_path, innerexception=e)

    if stat.S_ISDIR(st.st_mode):
        raise NotAFile("Requested path is a directory: %s" % safe_path)

    return safe_path, st


def content_disposition(filename):
    """Attachment header value naming the file as the client asked for it."""
    filename = filename.replace('\r', '').replace('\n', '')
    filename = filename.replace('\\', '\\\\').replace('"', '\\"')
    return ('attachment; filename="%s"' % filename).encode('utf-8')


def iter_file(fh, chunk_size=DOWNLOAD_CHUNK_SIZE, limit=None):
    """
    Yields the contents of an open binary file in chunks.
    With `limit` set, stops after that many bytes even if the file grew meanwhile.
    """
    remaining = limit
    while remaining is None or remaining > 0:
        read_size = chunk_size if remaining is None else min(chunk_size, remaining)
        chunk = fh.read(read_size)
        if not chunk:
            break
        if remaining is not None:
            remaining -= len(chunk)
        yield chunk
