import sys
import json
import time
import logging

DEFAULT_LOG_FILE = '/tmp/hfs.last.log'

LOG_LEVELS = {
    'trace': logging.DEBUG,
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warn': logging.WARNING,
    'warning': logging.WARNING,
    'error': logging.ERROR,
    'fatal': logging.CRITICAL,
    'panic': logging.CRITICAL,
}

_LEVEL_COLORS = {
    logging.DEBUG: '\x1b[37m',
    logging.INFO: '\x1b[36m',
    logging.WARNING: '\x1b[33m',
    logging.ERROR: '\x1b[31m',
    logging.CRITICAL: '\x1b[31m',
}
_RESET = '\x1b[0m'


def _timestamp(record):
    return time.strftime('%Y-%m-%dT%H:%M:%S%z', time.localtime(record.created))


class JSONFormatter(logging.Formatter):
    """One compact JSON object per line."""
    def format(self, record):
        entry = {
            "time": _timestamp(record),
            "level": record.levelname.lower(),
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if record.exc_info:
            entry["error"] = self.formatException(record.exc_info)
        return json.dumps(entry, separators=(",", ":"), default=str)


class ColorFormatter(logging.Formatter):
    """Readable console lines with a full timestamp and a colored level tag."""
    def format(self, record):
        color = _LEVEL_COLORS.get(record.levelno, '')
        ts = time.strftime('%Y-%m-%d %H:%M:%S', time.localtime(record.created))
        line = '%s%-4.4s%s[%s] %s' % (color, record.levelname, _RESET, ts, record.getMessage())
        if record.exc_info:
            line += '\n' + self.formatException(record.exc_info)
        return line


def parse_level(level):
    try:
        return LOG_LEVELS[level.lower()]
    except KeyError:
        raise ValueError('Invalid log level: %s' % level)


def setup_logging(level='info', log_file=DEFAULT_LOG_FILE, stream=None):
    """
    Sends the 'hfserver' logs to two places:
      - the console, colored text on a terminal and JSON lines otherwise
      - `log_file` as JSON lines, truncated on every start

    Raises:
        ValueError: unknown level name
        OSError: the log file can not be opened
    """
    logger = logging.getLogger('hfserver')
    logger.setLevel(parse_level(level))
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    if stream is None:
        stream = sys.stdout
    console = logging.StreamHandler(stream)
    isatty = getattr(stream, 'isatty', None)
    if isatty is not None and isatty():
        console.setFormatter(ColorFormatter())
    else:
        console.setFormatter(JSONFormatter())
    logger.addHandler(console)

    if log_file is not None:
        fh = logging.FileHandler(log_file, mode='w', encoding='utf-8')
        fh.setFormatter(JSONFormatter())
        logger.addHandler(fh)

    logger.propagate = False
    return logger
