# backend/wsgi.py
from bookmarket import create_app

app = create_app()
