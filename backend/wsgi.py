# backend/wsgi.py
from livemart import create_app

app = create_app()
