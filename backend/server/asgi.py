"""
ASGI entry point.

Used by uvicorn / gunicorn:
    uvicorn server.asgi:app

.env is loaded before AppConfig reads the environment.
"""

from dotenv import load_dotenv

load_dotenv()

from config import AppConfig  # pylint: disable=wrong-import-position
from server.app import create_app  # pylint: disable=wrong-import-position

app = create_app(AppConfig.load_from_env())
