import os
from typing import NamedTuple

from hfserver.common.target import ServerTarget


class FileServerConfig(NamedTuple):
	"""
	Process wide settings, built once at startup and handed to every handler.
	Being a tuple it can not be modified after creation.
	"""
	directory: str
	listen_ip: str = '0.0.0.0'
	listen_port: int = 8080
	log_level: str = 'info'

	@staticmethod
	def from_args(args):
		return FileServerConfig(
			directory = os.path.abspath(args.dir_to_serve),
			listen_ip = args.listen_ip,
			listen_port = args.listen_port,
			log_level = args.log_level,
		)

	def get_target(self):
		return ServerTarget(self.listen_ip, self.listen_port)

	def __str__(self):
		t = '==== FileServerConfig ====\r\n'
		for k, v in self._asdict().items():
			t += '%s: %s\r\n' % (k, v)
		return t
