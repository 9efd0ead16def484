# backend/wsgi.py
from lsms import create_app

app = create_app()
