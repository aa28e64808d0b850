"""
Entry point for running the Natural Disaster Monitor backend locally.

This module configures logging, builds the application (which also
imports any legacy ``db.json`` store) and starts the development
server when executed directly. In production a WSGI server such as
gunicorn should serve ``wsgi:app`` instead; TLS is terminated in
front of the application.
"""

import os

from disaster_monitor import create_app
from disaster_monitor.logging_config import setup_logging

setup_logging()
app = create_app()

if __name__ == "__main__":
    app.run(host="0.0.0.0", port=int(os.environ.get("PORT", 3000)), debug=True)
