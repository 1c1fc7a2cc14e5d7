import re
import urllib.parse

from hfserver.errors import MultipartError


def parse_header_params(value):
    """
    Splits a header value like 'form-data; name="files"; filename="a b.txt"'
    into its main value and a dict of (lowercased) parameters.
    RFC 5987 style 'filename*' parameters are decoded and take precedence.
    """
    main, _, rest = value.partition(';')
    params = {}
    for m in re.finditer(r'\s*([^\s=;]+)\s*=\s*("(?:[^"\\]|\\.)*"|[^;]*)\s*;?', rest):
        key = m.group(1).lower()
        val = m.group(2).strip()
        if val.startswith('"') and val.endswith('"') and len(val) >= 2:
            val = re.sub(r'\\(.)', r'\1', val[1:-1])
        if key.endswith('*'):
            charset, _, encoded = val.partition("'")
            _, _, encoded = encoded.partition("'")
            try:
                val = urllib.parse.unquote(encoded, encoding=charset or 'utf-8', errors='strict')
            except (LookupError, UnicodeDecodeError):
                continue
            params[key[:-1]] = val
            continue
        params.setdefault(key, val)
    return main.strip().lower(), params


class MultipartPart:
    """
    One part of a multipart/form-data body.
    The body is only available as a stream of chunks and only until the next part is requested.
    """
    def __init__(self, reader, headers):
        self.reader = reader
        self.headers = headers
        self.name = None
        self.filename = None
        self.done = False

        disposition = headers.get('content-disposition')
        if disposition is not None:
            _, params = parse_header_params(disposition)
            self.name = params.get('name')
            self.filename = params.get('filename')

    async def iter_chunks(self):
        reader = self.reader
        delimiter = reader.delimiter
        # a delimiter may be split across two network chunks, never hand out its possible prefix
        keep = len(delimiter) - 1
        while not self.done:
            pos = reader.buffer.find(delimiter)
            if pos != -1:
                data = reader.buffer[:pos]
                reader.buffer = reader.buffer[pos:]
                self.done = True
                if data:
                    yield data
                return

            if len(reader.buffer) > keep:
                data = reader.buffer[:-keep]
                reader.buffer = reader.buffer[-keep:]
                yield data

            if not await reader._fill():
                raise MultipartError("Multipart body ended in the middle of part %r" % (self.filename or self.name))

    async def drain(self):
        async for _ in self.iter_chunks():
            pass

    async def read(self):
        """Whole body of the part. Only to be used for small form fields."""
        chunks = []
        async for chunk in self.iter_chunks():
            chunks.append(chunk)
        return b''.join(chunks)


class MultipartReader:
    """
    Pull style multipart/form-data parser working on top of a chunk source.

    Memory use is bounded by one network chunk plus the delimiter length,
    file contents are never collected, they are handed to the caller part by part.
    """

    def __init__(self, boundary, read_chunk, max_header_size=8*1024):
        """
        Args:
            boundary (bytes or str): The boundary from the Content-Type header
            read_chunk: coroutine function returning the next piece of the body, b'' at the end
            max_header_size (int): Limit for the header block of a single part
        """
        if isinstance(boundary, str):
            boundary = boundary.encode('ascii')
        self.boundary = boundary
        self.read_chunk = read_chunk
        self.max_header_size = max_header_size

        self.delimiter = b'\r\n--' + boundary
        # pretend a line break preceded the body so the first delimiter looks like all the others
        self.buffer = b'\r\n'
        self.eof = False
        self.finished = False
        self.current = None

    @staticmethod
    def from_content_type(content_type, read_chunk, **kwargs):
        if not content_type:
            raise MultipartError("Request has no Content-Type", message="Could not process upload")
        mediatype, params = parse_header_params(content_type)
        if mediatype != 'multipart/form-data':
            raise MultipartError("Request Content-Type isn't multipart/form-data: %s" % content_type, message="Could not process upload")
        boundary = params.get('boundary', '')
        if not boundary or len(boundary) > 70:
            raise MultipartError("Missing or invalid boundary in Content-Type: %s" % content_type, message="Could not process upload")
        try:
            boundary = boundary.encode('ascii')
        except UnicodeEncodeError:
            raise MultipartError("Non-ASCII boundary in Content-Type", message="Could not process upload")
        return MultipartReader(boundary, read_chunk, **kwargs)

    async def _fill(self):
        if self.eof:
            return False
        chunk = await self.read_chunk()
        if not chunk:
            self.eof = True
            return False
        self.buffer += chunk
        return True

    async def next_part(self):
        """
        Returns the next MultipartPart, or None once the closing delimiter was seen.
        Whatever is left of the previous part is skipped.
        """
        if self.finished:
            return None
        try:
            if self.current is not None:
                await self.current.drain()
                self.current = None
            return await self._next_part()
        except ConnectionError as e:
            raise MultipartError("Error reading next part", innerexception=e)

    async def _next_part(self):
        keep = len(self.delimiter) - 1
        while True:
            pos = self.buffer.find(self.delimiter)
            if pos != -1:
                self.buffer = self.buffer[pos + len(self.delimiter):]
                break
            # preamble, not interesting
            if len(self.buffer) > keep:
                self.buffer = self.buffer[-keep:]
            if not await self._fill():
                raise MultipartError("Multipart body ended before the closing boundary")

        while len(self.buffer) < 2:
            if not await self._fill():
                raise MultipartError("Multipart body ended right after a boundary")

        if self.buffer.startswith(b'--'):
            # closing delimiter, the epilogue is ignored
            self.finished = True
            self.buffer = b''
            return None

        headers = await self._read_headers()
        self.current = MultipartPart(self, headers)
        return self.current

    async def _read_headers(self):
        while True:
            end = self.buffer.find(b'\r\n\r\n')
            if end != -1:
                break
            if len(self.buffer) > self.max_header_size:
                raise MultipartError("Multipart headers too long or malformed (missing header terminator)")
            if not await self._fill():
                raise MultipartError("Multipart body ended inside part headers")

        header_block = self.buffer[:end]
        self.buffer = self.buffer[end + 4:]
        if len(header_block) > self.max_header_size:
            raise MultipartError("Multipart part headers too long")

        lines = header_block.split(b'\r\n')
        # first line is whatever followed the boundary on its line (transport padding)
        if lines[0].strip(b' \t') != b'':
            raise MultipartError("Garbage after multipart boundary")

        headers = {}
        for line in lines[1:]:
            if not line:
                continue
            name, sep, value = line.partition(b':')
            if not sep:
                raise MultipartError("Malformed multipart header line: %r" % line[:100])
            headers[name.decode('ascii', errors='replace').strip().lower()] = value.decode('utf-8', errors='replace').strip()
        return headers
