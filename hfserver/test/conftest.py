"""Shared fixtures and helpers for the file server tests."""

import asyncio

import h11
import pytest

from hfserver.config import FileServerConfig
from hfserver.protocol.httpserver import HTTPServer
from hfserver.fileserver.handler import FileServerHandler

BOUNDARY = 'hfsTestBoundary7MA4YWxkTrZu0gW'


def build_multipart(files=(), fields=(), boundary=BOUNDARY):
    """Encode a multipart/form-data body.

    Args:
        files: (field name, file name, content bytes) tuples.
        fields: (field name, value str) tuples.

    Returns:
        Raw body bytes.
    """
    body = b''
    for name, value in fields:
        body += (
            f'--{boundary}\r\n'
            f'Content-Disposition: form-data; name="{name}"\r\n'
            '\r\n'
        ).encode('utf-8') + value.encode('utf-8') + b'\r\n'
    for name, filename, content in files:
        body += (
            f'--{boundary}\r\n'
            f'Content-Disposition: form-data; name="{name}"; filename="{filename}"\r\n'
            'Content-Type: application/octet-stream\r\n'
            '\r\n'
        ).encode('utf-8') + content + b'\r\n'
    body += f'--{boundary}--\r\n'.encode('ascii')
    return body


def multipart_content_type(boundary=BOUNDARY):
    return f'multipart/form-data; boundary={boundary}'


def chunk_source(data, size):
    """Async chunk reader handing out `data` in pieces of `size` bytes."""
    chunks = iter([data[i:i + size] for i in range(0, len(data), size)])

    async def read_chunk():
        return next(chunks, b'')

    return read_chunk


class HTTPResult:
    def __init__(self, status, headers, body):
        self.status = status
        self.headers = headers
        self.body = body

    def __repr__(self):
        return f'HTTPResult({self.status}, {self.headers!r}, {self.body[:80]!r})'


async def read_response(conn, reader):
    response = None
    chunks = []
    while True:
        event = conn.next_event()
        if event is h11.NEED_DATA:
            conn.receive_data(await reader.read(65536))
            continue
        if isinstance(event, h11.Response):
            response = event
        elif isinstance(event, h11.Data):
            chunks.append(bytes(event.data))
        elif isinstance(event, (h11.EndOfMessage, h11.ConnectionClosed)):
            break
    headers = {
        name.decode('ascii').lower(): value.decode('utf-8')
        for name, value in response.headers
    }
    return HTTPResult(response.status_code, headers, b''.join(chunks))


async def send_request(conn, writer, method, target, headers=(), body=b''):
    all_headers = [('Host', '127.0.0.1')] + list(headers)
    if body:
        all_headers.append(('Content-Length', str(len(body))))
    writer.write(conn.send(h11.Request(method=method, target=target, headers=all_headers)))
    if body:
        writer.write(conn.send(h11.Data(data=body)))
    writer.write(conn.send(h11.EndOfMessage()))
    await writer.drain()


async def http_request(port, method, target, headers=(), body=b''):
    """One request on a fresh connection."""
    reader, writer = await asyncio.open_connection('127.0.0.1', port)
    try:
        conn = h11.Connection(h11.CLIENT)
        headers = list(headers) + [('Connection', 'close')]
        await send_request(conn, writer, method, target, headers, body)
        return await read_response(conn, reader)
    finally:
        writer.close()


def run_with_server(directory, scenario):
    """Start a file server on an ephemeral port and run `scenario(port)` against it."""
    async def runner():
        config = FileServerConfig(directory=str(directory), listen_ip='127.0.0.1', listen_port=0)
        server = HTTPServer(lambda: FileServerHandler(config), config.get_target())
        async with server:
            return await scenario(server.sockname[1])

    return asyncio.run(runner())


@pytest.fixture
def served_dir(tmp_path):
    """Empty directory to serve.

    Returns:
        Path of the served directory.
    """
    directory = tmp_path / 'served'
    directory.mkdir()
    return directory
