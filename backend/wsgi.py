# backend/wsgi.py
from itemtracker import create_app

app = create_app()
