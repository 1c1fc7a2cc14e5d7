import os
import re
import logging
import urllib.parse

from hfserver.errors import MalformedForm
from hfserver.fileserver.validator import validate_path

logger = logging.getLogger(__name__)

MAX_FORM_SIZE = 10 * 1024 * 1024

_BAD_ESCAPE = re.compile(r'%(?![0-9A-Fa-f]{2})')


def parse_qs_strict(qs):
    """
    urlencoded form parser that refuses what browsers never send:
    broken percent escapes and ';' separators.
    """
    fields = {}
    if not qs:
        return fields
    for pair in qs.split('&'):
        if not pair:
            continue
        if ';' in pair:
            raise MalformedForm("Invalid semicolon separator in form data")
        if _BAD_ESCAPE.search(pair):
            raise MalformedForm("Invalid URL escape in form data: %r" % pair[:100])
        key, _, value = pair.partition('=')
        try:
            key = urllib.parse.unquote_plus(key, errors='strict')
            value = urllib.parse.unquote_plus(value, errors='strict')
        except UnicodeDecodeError as e:
            raise MalformedForm("Form data is not valid UTF-8", innerexception=e)
        fields.setdefault(key, []).append(value)
    return fields


def parse_form(query, body=None, content_type=None):
    """
    Merges the fields of the query string and of an urlencoded request body.
    The body is ignored unless it is application/x-www-form-urlencoded.

    Raises:
        MalformedForm: on undecodable input
    """
    fields = parse_qs_strict(query)
    if body is None or not content_type:
        return fields
    mediatype = content_type.split(';', 1)[0].strip().lower()
    if mediatype != 'application/x-www-form-urlencoded':
        return fields
    if len(body) > MAX_FORM_SIZE:
        raise MalformedForm("Form body too large")
    try:
        text = body.decode('utf-8')
    except UnicodeDecodeError as e:
        raise MalformedForm("Form body is not valid UTF-8", innerexception=e)
    for key, values in parse_qs_strict(text).items():
        fields.setdefault(key, []).extend(values)
    return fields


def delete_files(directory, candidates):
    """
    Best-effort removal of the named files. Rejected names and failed removals
    are logged and skipped, they never stop the rest of the batch.

    Returns:
        int: number of files actually removed
    """
    removed = 0
    for filename in candidates:
        file_path, err = validate_path(directory, filename)
        if err is not None:
            logger.warning("Attempted path traversal on delete: %s" % filename)
            continue
        logger.info("Deleting file: %s" % file_path)
        try:
            os.remove(file_path)
        except OSError as e:
            logger.error("Failed to delete file %s: %s" % (file_path, e))
            continue
        removed += 1
    return removed
