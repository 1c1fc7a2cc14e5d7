import os
import logging
import datetime
import urllib.parse

import h11

from hfserver.config import FileServerConfig
from hfserver.errors import FileServerError, MethodNotAllowed, NotFound, AccessError, MalformedForm
from hfserver.protocol.httpserver import HTTPServerHandler, format_date_time
from hfserver.fileserver.lister import list_files
from hfserver.fileserver.page import render_index
from hfserver.fileserver.download import prepare_download, content_disposition, iter_file
from hfserver.fileserver.multipart import MultipartReader
from hfserver.fileserver.upload import receive_files
from hfserver.fileserver.delete import parse_form, delete_files, MAX_FORM_SIZE
from hfserver.fileserver.static import resolve_static, is_dir, get_mime_type, render_directory_index

logger = logging.getLogger(__name__)


class FileServerHandler(HTTPServerHandler):
    """
    Routes requests of one client connection to the file operations.

    Routes:
    - /                 directory listing page
    - /upload           multipart upload (POST)
    - /delete           delete the files named in the 'files' form field (POST)
    - /download/<name>  download one file as attachment (GET)
    - /files/<path>     raw static view of the directory (GET, HEAD)
    """

    def __init__(self, config:FileServerConfig):
        super().__init__()
        self.config = config
        self.directory = config.directory

    async def handle_request(self, request:h11.Request):
        try:
            await self.route()
        except FileServerError as e:
            await self._serve_error(e)

    async def route(self):
        path = self.request_path

        if path == '/':
            await self.discard_body()
            return await self.serve_listing()

        if path == '/upload':
            self._require_method('POST')
            return await self.handle_upload()

        if path == '/delete':
            self._require_method('POST')
            return await self.handle_delete()

        if path.startswith('/download/'):
            self._require_method('GET')
            await self.discard_body()
            return await self.serve_download(path[len('/download/'):])

        if path.startswith('/files/'):
            self._require_method('GET', 'HEAD')
            await self.discard_body()
            return await self.serve_static(path[len('/files/'):])

        await self.discard_body()
        raise NotFound("No route for %s" % path)

    def _require_method(self, *methods):
        if self.request_method not in methods:
            raise MethodNotAllowed("%s not allowed on %s" % (self.request_method, self.request_path))

    async def _serve_error(self, err:FileServerError):
        if err.is_client_error:
            logger.warning("%s %s: %s" % (self.request_method, self.request_path, err))
        else:
            logger.error("%s %s: %s" % (self.request_method, self.request_path, err))
        await self.send_error(err.status_code, err.message)

    async def _redirect_home(self):
        await self.send_redirect('/', extra_headers=[("HX-Refresh", b"true")])

    async def _stream_file(self, path, st, headers):
        """Sends 200 with the given headers and the file body. The file is held open only for the duration."""
        try:
            fh = open(path, 'rb')
        except OSError as e:
            raise AccessError("Error opening file %s" % path, innerexception=e, message="Error opening file")

        with fh:
            headers.append(("Content-Length", str(st.st_size).encode("ascii")))
            await self.start_response(200, headers)
            if self.request_method == 'HEAD':
                return await self.end_response()
            sent = 0
            try:
                for chunk in iter_file(fh, limit=st.st_size):
                    await self.send_data(chunk)
                    sent += len(chunk)
                await self.end_response()
            except Exception as e:
                # too late for an error status, the connection gets dropped by the caller
                logger.error("Error streaming file %s after %d bytes: %s" % (path, sent, e))
                raise

    async def serve_listing(self):
        files = list_files(self.directory)
        body = render_index(files).encode('utf-8')
        await self.send_response(200, body, content_type="text/html; charset=utf-8")

    async def serve_download(self, filename):
        safe_path, st = prepare_download(self.directory, filename)
        headers = self.basic_headers()
        headers.extend([
            ("Content-Disposition", content_disposition(filename)),
            ("Content-Type", b"application/octet-stream"),
        ])
        await self._stream_file(safe_path, st, headers)

    async def handle_upload(self):
        reader = MultipartReader.from_content_type(self.get_header('content-type'), self.read_body_chunk)
        await receive_files(self.directory, reader)
        await self.discard_body()
        await self._redirect_home()

    async def handle_delete(self):
        body = await self.read_body(limit=MAX_FORM_SIZE)
        if body is None:
            raise MalformedForm("Could not parse form for delete: body too large")
        try:
            fields = parse_form(self.request_query, body, self.get_header('content-type'))
        except MalformedForm as e:
            raise MalformedForm("Could not parse form for delete: %s" % e)
        delete_files(self.directory, fields.get('files', []))
        await self._redirect_home()

    async def serve_static(self, url_path):
        fs_path, st = resolve_static(self.directory, url_path)
        if is_dir(st):
            if not self.request_path.endswith('/'):
                location = urllib.parse.quote(self.request_path + '/')
                return await self.send_redirect(location, status_code=301)
            index_path = os.path.join(fs_path, 'index.html')
            if os.path.isfile(index_path):
                fs_path, st = index_path, os.stat(index_path)
            else:
                body = render_directory_index(fs_path).encode('utf-8')
                return await self.send_response(200, body, content_type="text/html; charset=utf-8")

        mtime = datetime.datetime.fromtimestamp(st.st_mtime, tz=datetime.timezone.utc)
        headers = self.basic_headers()
        headers.extend([
            ("Content-Type", get_mime_type(fs_path).encode("ascii")),
            ("Last-Modified", format_date_time(mtime).encode("ascii")),
        ])
        await self._stream_file(fs_path, st, headers)
