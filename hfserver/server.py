import asyncio

from hfserver import logger
from hfserver.common.target import ServerTarget
from hfserver.common.connection import ServerConnection


class ListenServer:
	"""
	Plain TCP listener. Accepted clients are handed out by `serve` as ServerConnection objects.
	"""
	def __init__(self, target:ServerTarget, buffer_size:int = 65535):
		self.target = target
		self.buffer_size = buffer_size
		self.connection_queue = asyncio.Queue()
		self.server = None
		self.sockname = None

	async def __handle_connection(self, reader, writer):
		connection = ServerConnection(reader, writer, self.buffer_size)
		await self.connection_queue.put(connection)

	async def start(self):
		if self.server is not None:
			return
		self.server = await asyncio.start_server(
			self.__handle_connection,
			self.target.get_ip_or_hostname(),
			self.target.port
		)
		self.sockname = self.server.sockets[0].getsockname()
		logger.debug('Listening on %s:%s' % (self.sockname[0], self.sockname[1]))

	async def close(self):
		if self.server is None:
			return
		self.server.close()
		self.server = None

	async def serve(self):
		await self.start()
		try:
			while self.server is not None and self.server.is_serving():
				connection = await self.connection_queue.get()
				yield connection
		finally:
			if self.server is not None:
				self.server.close()
