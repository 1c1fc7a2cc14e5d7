import os
import logging

from hfserver.errors import CreateError, WriteError, MultipartError
from hfserver.fileserver.validator import validate_path, base_name_only
from hfserver.fileserver.multipart import MultipartReader, MultipartPart

logger = logging.getLogger(__name__)


def open_destination(path):
    """Creates (or truncates) the destination file of an upload."""
    return open(path, 'wb')


def _remove_partial(path):
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.error("Could not remove partial upload %s: %s" % (path, e))


async def save_part(directory, part:MultipartPart):
    """
    Copies one file part into the served directory.

    Returns:
        tuple: (destination path, number of bytes written)

    Raises:
        InvalidPath: the declared file name was rejected
        CreateError: the destination could not be created, or the name has
            no usable base name
        WriteError: the copy failed, the partial file has been removed
    """
    filename = base_name_only(part.filename)
    if not filename:
        raise CreateError("Upload with unusable file name: %r" % part.filename)
    dst_path, err = validate_path(directory, part.filename)
    if err is not None:
        raise err

    logger.info("Starting upload of file: %s" % filename)
    try:
        dst = open_destination(dst_path)
    except OSError as e:
        raise CreateError("Could not create file %s on server" % dst_path, innerexception=e)

    written = 0
    try:
        with dst:
            async for chunk in part.iter_chunks():
                dst.write(chunk)
                written += len(chunk)
    except (OSError, MultipartError) as e:
        _remove_partial(dst_path)
        raise WriteError("Could not save file %s" % dst_path, innerexception=e)

    logger.info("Completed upload of file: %s (size: %d bytes)" % (filename, written))
    return dst_path, written


async def receive_files(directory, reader:MultipartReader):
    """
    Streams every file part of a multipart body into the served directory.

    Parts without a file name are form fields and get skipped. The first
    failing part aborts the whole upload, files completed before it stay.

    Returns:
        int: number of files written
    """
    files_uploaded = 0
    while True:
        part = await reader.next_part()
        if part is None:
            break
        if not part.filename:
            continue
        await save_part(directory, part)
        files_uploaded += 1

    logger.info("Successfully uploaded %d files" % files_uploaded)
    return files_uploaded
