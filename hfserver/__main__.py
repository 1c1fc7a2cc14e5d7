#!/usr/bin/env python3
"""
HTTP file server

Exposes a single directory over HTTP: list, upload, download and delete files
from a browser or with curl.

Usage:
    hfserver [--dir-to-serve DIR] [--listen-ip IP] [--listen-port PORT] [--log-level LEVEL]

Example:
    hfserver -d ./shared --listen-ip 127.0.0.1 --listen-port 8080
"""

import os
import sys
import asyncio
import argparse

from hfserver import logger
from hfserver._version import __version__
from hfserver.config import FileServerConfig
from hfserver.logutil import setup_logging, LOG_LEVELS, DEFAULT_LOG_FILE
from hfserver.protocol.httpserver import HTTPServer
from hfserver.fileserver.handler import FileServerHandler


async def run_file_server(config:FileServerConfig):
    """Serves the configured directory until cancelled."""
    logger.info("Starting server on %s:%s" % (config.listen_ip, config.listen_port))
    logger.info("Serving files from: %s" % config.directory)

    server = HTTPServer(lambda: FileServerHandler(config), config.get_target())
    try:
        await server.serve()
    finally:
        await server.terminate()


def get_parser():
    parser = argparse.ArgumentParser(
        prog='hfserver',
        description='A simple HTTP server for file listing, uploading, and downloading.',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog='''
Examples:
  %(prog)s                                   # Serve the current directory on 0.0.0.0:8080
  %(prog)s -d /srv/share                     # Serve another directory
  %(prog)s -d /srv/share --listen-port 9000  # Use custom port
  %(prog)s --log-level debug                 # Verbose logging
        ''')
    parser.add_argument(
        '--log-level',
        default='info',
        type=str.lower,
        choices=list(LOG_LEVELS.keys()),
        help='Set log level (default: info)'
    )
    parser.add_argument(
        '--dir-to-serve', '-d',
        default='.',
        help='Directory to serve files from (default: .)'
    )
    parser.add_argument(
        '--listen-ip',
        default='0.0.0.0',
        help='IP address to listen on (default: 0.0.0.0)'
    )
    parser.add_argument(
        '--listen-port',
        type=int,
        default=8080,
        help='Port to listen on (default: 8080)'
    )
    parser.add_argument(
        '--log-file',
        default=DEFAULT_LOG_FILE,
        help='JSON log file, truncated on start (default: %s)' % DEFAULT_LOG_FILE
    )
    parser.add_argument(
        '--version', '-v',
        action='version',
        version='hfserver %s' % __version__
    )
    return parser


def main():
    parser = get_parser()
    args = parser.parse_args()

    if not os.path.exists(args.dir_to_serve):
        print(f"Error: Directory '{args.dir_to_serve}' does not exist")
        sys.exit(1)
    if not os.path.isdir(args.dir_to_serve):
        print(f"Error: '{args.dir_to_serve}' is not a directory")
        sys.exit(1)
    if args.listen_port < 1 or args.listen_port > 65535:
        print(f"Error: Port must be between 1 and 65535, got {args.listen_port}")
        sys.exit(1)

    config = FileServerConfig.from_args(args)

    try:
        setup_logging(config.log_level, args.log_file)
    except OSError as e:
        print(f"Failed to open log file: {e}")
        sys.exit(1)

    logger.info("Current configuration:\n%s" % config)

    try:
        asyncio.run(run_file_server(config))
    except KeyboardInterrupt:
        logger.info("Server stopped by user")
    except OSError as e:
        logger.critical("Failed to start server: %s" % e)
        sys.exit(1)


if __name__ == '__main__':
    main()
