import ipaddress


class ServerTarget:
	"""Address the HTTP server listens on."""
	def __init__(self, ip:str, port:int, hostname:str = None):
		self.hostname = hostname
		self.port = port

		try:
			ipaddress.ip_address(ip)
			self.ip = ip
		except ValueError:
			if ip is not None:
				self.hostname = ip
			self.ip = None

		if self.ip is None and self.hostname is None:
			raise Exception('Both IP and Hostname can\'t be none!')

		if port is None or port < 0 or port > 65535:
			raise ValueError('Invalid port number %s' % port)

	def get_ip_or_hostname(self):
		if self.ip is not None:
			return self.ip
		return self.hostname

	def __str__(self):
		ip = self.get_ip_or_hostname()
		if ':' in ip:
			return '[%s]:%s' % (ip, self.port)
		return '%s:%s' % (ip, self.port)

	def __repr__(self):
		t = '==== ServerTarget ====\r\n'
		for k in self.__dict__:
			t += '%s: %s\r\n' % (k, self.__dict__[k])
		return t
