import asyncio
import datetime
import email.utils
import urllib.parse
from itertools import count

import h11

from hfserver import logger
from hfserver._version import __version__
from hfserver.common.target import ServerTarget
from hfserver.common.connection import ServerConnection
from hfserver.server import ListenServer


SERVER_IDENT = " ".join(
    [f"hfserver/{__version__}", h11.PRODUCT_ID]
).encode("ascii")


def format_date_time(dt=None):
    """Generate a RFC 7231 / RFC 9110 IMF-fixdate string"""
    if dt is None:
        dt = datetime.datetime.now(datetime.timezone.utc)
    return email.utils.format_datetime(dt, usegmt=True)


class HTTPConnectionWrapper:
    _next_id = count()

    def __init__(self, client_id, stream:ServerConnection):
        self.client_id = client_id
        self.stream = stream
        self.conn = h11.Connection(h11.SERVER)
        # A unique id for this connection, to include in debugging output
        # (useful for understanding what's going on if there are multiple
        # simultaneous clients).
        self._obj_id = next(HTTPConnectionWrapper._next_id)

    async def send(self, event):
        # ConnectionClosed is never sent, closing is done on the stream itself
        assert type(event) is not h11.ConnectionClosed
        data = self.conn.send(event)
        try:
            await self.stream.write(data)
        except BaseException:
            # the peer is gone, h11 must not expect anything else from us
            self.conn.send_failed()
            raise

    async def _read_from_peer(self):
        if self.conn.they_are_waiting_for_100_continue:
            logger.debug('[%s] Sending 100 Continue' % self.client_id)
            go_ahead = h11.InformationalResponse(
                status_code=100, headers=self.basic_headers()
            )
            await self.send(go_ahead)
        try:
            data = await self.stream.read_one()
        except (ConnectionError, OSError) as exc:
            logger.debug('[%s] Error reading from peer: %s' % (self.client_id, exc))
            # They've stopped talking to us. h11 treats b'' as EOF.
            data = b""
        self.conn.receive_data(data)

    async def next_event(self):
        while True:
            event = self.conn.next_event()
            if event is h11.NEED_DATA:
                await self._read_from_peer()
                continue
            return event

    @property
    def body_pending(self):
        """True while the client still has request body on the wire that nobody consumed."""
        return self.conn.their_state is h11.SEND_BODY

    @property
    def response_started(self):
        return self.conn.our_state is not h11.SEND_RESPONSE

    async def shutdown_and_clean_up(self):
        await self.stream.close()

    def basic_headers(self):
        # HTTP requires these headers in all responses
        return [
            ("Date", format_date_time().encode("ascii")),
            ("Server", SERVER_IDENT),
        ]


class HTTPServerHandler:
    """
    One instance serves one client connection.
    Subclasses either implement do_<METHOD> coroutines or override handle_request.
    """
    def __init__(self):
        self._wrapper:HTTPConnectionWrapper = None
        self.request_method = None
        self.request_path = None
        self.request_query = None
        self.request_headers = {}

    def basic_headers(self):
        return self._wrapper.basic_headers()

    def get_header(self, name, default=None):
        return self.request_headers.get(name.lower(), default)

    async def _process_request(self, wrapper:HTTPConnectionWrapper, request:h11.Request):
        self._wrapper = wrapper
        self.request_method = request.method.decode("ascii")
        target = urllib.parse.urlsplit(request.target.decode("utf-8", errors="replace"))
        self.request_path = urllib.parse.unquote(target.path)
        self.request_query = target.query
        self.request_headers = {}
        for name, value in request.headers:
            self.request_headers[name.decode("ascii").lower()] = value.decode("latin-1")

        logger.debug('[%s] %s %s' % (wrapper.client_id, self.request_method, request.target))
        try:
            await self.handle_request(request)
        except Exception:
            if self._wrapper.response_started:
                # headers are out, the only thing left to do is dropping the connection
                raise
            logger.exception('Unhandled error while serving %s %s' % (self.request_method, self.request_path))
            await self.send_error(500, "Internal server error")

    async def handle_request(self, request:h11.Request):
        func = getattr(self, f"do_{self.request_method}", None)
        if func is None:
            return await self.send_error(405, "Method Not Allowed")
        await func(request)

    async def read_body_chunk(self):
        """
        Returns the next piece of the request body, b'' once the body is complete.
        Raises ConnectionError if the client vanishes mid-body.
        """
        if not self._wrapper.body_pending:
            return b''
        try:
            event = await self._wrapper.next_event()
        except h11.RemoteProtocolError as e:
            raise ConnectionError(f"Request body interrupted: {e}")
        if isinstance(event, h11.Data):
            return bytes(event.data)
        if isinstance(event, h11.EndOfMessage):
            return b''
        raise ConnectionError(f"Unexpected event while reading request body: {type(event).__name__}")

    async def read_body(self, limit=None):
        """
        Reads the whole request body into memory. Returns None if it is larger than limit.
        Only meant for small bodies (forms), never for uploads.
        """
        chunks = []
        total = 0
        while True:
            chunk = await self.read_body_chunk()
            if not chunk:
                break
            total += len(chunk)
            if limit is not None and total > limit:
                return None
            chunks.append(chunk)
        return b''.join(chunks)

    async def discard_body(self, limit=256*1024):
        """Eats a small leftover request body so the connection can be reused."""
        total = 0
        while self._wrapper.body_pending and total <= limit:
            chunk = await self.read_body_chunk()
            if not chunk:
                break
            total += len(chunk)

    async def start_response(self, status_code, headers):
        if self._wrapper.body_pending:
            # unread request body left on the wire, this connection can not be reused
            headers.append(("Connection", b"close"))
        await self._wrapper.send(h11.Response(status_code=status_code, headers=headers))

    async def send_data(self, data):
        if self.request_method == 'HEAD' or not data:
            return
        await self._wrapper.send(h11.Data(data=data))

    async def end_response(self):
        await self._wrapper.send(h11.EndOfMessage())

    async def send_response(self, status_code, body=b'', content_type=None, extra_headers=None):
        headers = self.basic_headers()
        if content_type is not None:
            headers.append(("Content-Type", content_type.encode("ascii")))
        if extra_headers is not None:
            headers.extend(extra_headers)
        headers.append(("Content-Length", str(len(body)).encode("ascii")))
        await self.start_response(status_code, headers)
        await self.send_data(body)
        await self.end_response()

    async def send_error(self, status_code, message):
        body = (message + "\n").encode("utf-8")
        await self.send_response(
            status_code,
            body,
            content_type="text/plain; charset=utf-8",
            extra_headers=[("X-Content-Type-Options", b"nosniff")],
        )

    async def send_redirect(self, location, status_code=303, extra_headers=None):
        headers = [("Location", location.encode("utf-8"))]
        if extra_headers is not None:
            headers.extend(extra_headers)
        await self.send_response(status_code, extra_headers=headers)


class HTTPServer:
    def __init__(self, client_handler, target:ServerTarget):
        self.target = target
        self.client_handler = client_handler

        self.clients = []
        self.client_tasks = set()
        self.id_counter = 0
        self.listener = ListenServer(self.target)
        self.__main_task = None

    @property
    def sockname(self):
        return self.listener.sockname

    async def __aenter__(self):
        await self.listener.start()
        self.__main_task = asyncio.create_task(self.serve())
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.terminate()

    async def terminate(self):
        if self.__main_task is not None:
            self.__main_task.cancel()
            self.__main_task = None
        for client in list(self.clients):
            await client.close()
        self.clients = []
        tasks = list(self.client_tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self.client_tasks.clear()
        await self.listener.close()

    async def __handle_connection(self, connection:ServerConnection):
        client_id = self.id_counter
        self.id_counter += 1
        self.clients.append(connection)
        wrapper = HTTPConnectionWrapper(client_id, connection)
        handler = self.client_handler()
        logger.debug('[%s] New client connected from %s' % (client_id, connection.get_peer()))
        try:
            while True:
                if wrapper.conn.states == {h11.CLIENT: h11.CLOSED, h11.SERVER: h11.CLOSED}:
                    break

                if wrapper.conn.states[h11.CLIENT] == h11.MUST_CLOSE:
                    break

                if wrapper.conn.states[h11.SERVER] in (h11.MUST_CLOSE, h11.CLOSED, h11.ERROR):
                    break

                if wrapper.conn.states == {h11.CLIENT: h11.DONE, h11.SERVER: h11.DONE}:
                    wrapper.conn.start_next_cycle()
                    continue

                event = await wrapper.next_event()
                if type(event) is h11.Request:
                    await handler._process_request(wrapper, event)
                    continue
                if type(event) is h11.ConnectionClosed:
                    break
                if type(event) in (h11.Data, h11.EndOfMessage):
                    # leftover of a request body the handler did not care about
                    continue
                logger.debug('[%s] Unexpected event type %s' % (client_id, type(event)))

        except h11.RemoteProtocolError as e:
            logger.debug('[%s] Protocol error: %s' % (client_id, e))
            if wrapper.conn.our_state in (h11.IDLE, h11.SEND_RESPONSE):
                try:
                    body = (str(e) + "\n").encode("utf-8", errors="replace")
                    headers = wrapper.basic_headers()
                    headers.extend([
                        ("Content-Type", b"text/plain; charset=utf-8"),
                        ("Content-Length", str(len(body)).encode("ascii")),
                        ("Connection", b"close"),
                    ])
                    await wrapper.send(h11.Response(status_code=e.error_status_hint, headers=headers))
                    await wrapper.send(h11.Data(data=body))
                    await wrapper.send(h11.EndOfMessage())
                except Exception as exc:
                    logger.debug('[%s] Could not report protocol error: %s' % (client_id, exc))

        except Exception as e:
            logger.debug('[%s] Connection terminated: %r' % (client_id, e))

        finally:
            await wrapper.shutdown_and_clean_up()
            if connection in self.clients:
                self.clients.remove(connection)
            logger.debug('[%s] Client disconnected' % client_id)

    async def serve(self):
        await self.listener.start()
        logger.info('HTTP server listening on %s:%s' % (self.sockname[0], self.sockname[1]))
        async for connection in self.listener.serve():
            task = asyncio.create_task(self.__handle_connection(connection))
            self.client_tasks.add(task)
            task.add_done_callback(self.client_tasks.discard)
