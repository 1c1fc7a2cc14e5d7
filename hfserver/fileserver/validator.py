import os

from hfserver.errors import InvalidPath


def base_name_only(candidate):
    """
    Last path segment of a client supplied name. Trailing slashes are ignored,
    so 'a/b/' gives 'b' and 'a/b/c.txt' gives 'c.txt'.
    """
    return os.path.basename(candidate.rstrip('/'))


def validate_path(directory, candidate):
    """
    Maps a client supplied file name onto the served directory.

    Any name containing '..' is rejected outright, no normalization or symlink
    resolution takes place. Accepted names are flattened to their base name, so
    the result is always a direct child of `directory`.

    Args:
        directory (str): The served directory (absolute)
        candidate (str): File name as sent by the client

    Returns:
        tuple: (safe_path, None) on success, (None, InvalidPath) otherwise
    """
    if '..' in candidate:
        return None, InvalidPath('Attempted path traversal: %r' % candidate)
    return os.path.join(directory, base_name_only(candidate)), None
