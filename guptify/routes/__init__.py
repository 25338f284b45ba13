from .auth import router as auth
from .files import router as files
from .folders import router as folders
