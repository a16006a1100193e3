# backend/wsgi.py
from eazzymart import create_app

app = create_app()
