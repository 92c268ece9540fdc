"""
ASGI entry point.

Used by uvicorn:

    uvicorn server.asgi:app --app-dir backend
"""

from dotenv import load_dotenv

load_dotenv()

# pylint: disable=wrong-import-position
from config import AppConfig
from observability.logger import configure as configure_logging
from server.app import create_app

config = AppConfig.load_from_env()
configure_logging(env=config.env)

app = create_app(config)
