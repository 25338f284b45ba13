from .file import File
from .file_share import FileShare
from .folder import Folder
from .revoked_token import RevokedToken
from .user import User
