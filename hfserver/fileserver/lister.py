import os
import datetime
import logging

from hfserver.errors import DirectoryUnreadable

logger = logging.getLogger(__name__)


class FileView:
    """One row of the directory listing."""
    __slots__ = ('name', 'size', 'modified_at')

    def __init__(self, name:str, size:int, modified_at:datetime.datetime):
        self.name = name
        self.size = size
        self.modified_at = modified_at

    @property
    def size_mb(self):
        return "%.2f MB" % (self.size / (1024 * 1024))

    @property
    def modified(self):
        return self.modified_at.strftime("%Y-%m-%d %H:%M:%S")

    def __repr__(self):
        return 'FileView(name=%r, size=%s, modified_at=%s)' % (self.name, self.size, self.modified)


def _iter_views(entries):
    for entry in entries:
        try:
            if entry.is_dir(follow_symlinks=False):
                continue
            st = entry.stat(follow_symlinks=False)
        except OSError as e:
            logger.warning("Could not get file info for %s: %s" % (entry.name, e))
            continue
        yield FileView(
            entry.name,
            st.st_size,
            datetime.datetime.fromtimestamp(st.st_mtime),
        )


def list_files(directory):
    """
    Lists the non-directory entries of the served directory, sorted by name.
    Symlinks are reported as themselves and never followed, so a link to a
    directory shows up with the size of the link.

    The directory itself is read before this function returns, a failure there
    raises DirectoryUnreadable. Entries whose metadata can not be read are
    skipped with a warning. The returned iterator can be consumed once.
    """
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as e:
        raise DirectoryUnreadable("Failed to read directory %s" % directory, innerexception=e)
    return _iter_views(entries)
