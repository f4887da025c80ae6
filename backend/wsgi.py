# backend/wsgi.py
from grocer import create_app

app = create_app()
