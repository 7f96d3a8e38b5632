import logging

from chronojam.config import Config
from chronojam.server import create_app

logging.basicConfig(level=Config.LOG_LEVEL.upper())

app, socketio = create_app()
