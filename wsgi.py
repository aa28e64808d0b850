# wsgi.py (at repo root)
from disaster_monitor import create_app
from disaster_monitor.logging_config import setup_logging

setup_logging()
app = create_app()
