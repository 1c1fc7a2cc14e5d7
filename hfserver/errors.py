
class FileServerError(Exception):
	"""
	Base class of every error the file handlers report to the client.
	`message` is what the client gets to see, str(exc) is the detail that only goes to the log.
	"""
	status_code = 500
	message = 'Internal server error'

	def __init__(self, detail:str = None, innerexception:Exception = None, message:str = None):
		self.innerexception = innerexception
		if message is not None:
			self.message = message
		if detail is None:
			detail = self.message
		if innerexception is not None:
			detail = '%s: %s' % (detail, innerexception)
		super().__init__(detail)

	@property
	def is_client_error(self):
		return 400 <= self.status_code < 500


class InvalidPath(FileServerError):
	status_code = 400
	message = 'Invalid file path'

class NotFound(FileServerError):
	status_code = 404
	message = '404 page not found'

class NotAFile(FileServerError):
	status_code = 400
	message = 'Cannot download a directory'

class MalformedForm(FileServerError):
	status_code = 400
	message = 'Could not parse form'

class MethodNotAllowed(FileServerError):
	status_code = 405
	message = 'Method not allowed'

class AccessError(FileServerError):
	status_code = 500
	message = 'Error accessing file'

class CreateError(FileServerError):
	status_code = 500
	message = 'Could not create file on server'

class WriteError(FileServerError):
	status_code = 500
	message = 'Could not save file'

class MultipartError(FileServerError):
	status_code = 500
	message = 'Error processing upload'

class DirectoryUnreadable(FileServerError):
	status_code = 500
	message = 'Could not read directory'

class Forbidden(FileServerError):
	status_code = 403
	message = '403 Forbidden'
