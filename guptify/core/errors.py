"""Error taxonomy shared by services and routes.

Every error carries the HTTP status it maps to; ``guptify.main`` renders any
``GuptifyError`` as ``{"error": message}``.
"""


class GuptifyError(Exception):
    status_code = 500
    default_message = "Internal Server Error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(GuptifyError):
    status_code = 400
    default_message = "Invalid request"


class UploadRejected(ValidationError):
    default_message = "No file provided"


class AuthenticationError(GuptifyError):
    status_code = 401
    default_message = "Authentication required"


class NotFound(GuptifyError):
    status_code = 404
    default_message = "Not found"


class StorageWriteError(GuptifyError):
    status_code = 400
    default_message = "Failed to write to storage"


class StorageReadError(GuptifyError):
    status_code = 502
    default_message = "Storage is temporarily unavailable"


class MetadataWriteError(GuptifyError):
    status_code = 400
    default_message = "Failed to save metadata"


class QueryError(GuptifyError):
    status_code = 400
    default_message = "Query failed"


class ShareCreationError(GuptifyError):
    status_code = 400
    default_message = "Failed to generate share link"


class ShareInvalidOrExpired(GuptifyError):
    status_code = 404
    default_message = "Share link invalid or expired"
