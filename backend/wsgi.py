# Overview: WSGI entrypoint (FLASK_APP=wsgi.py).

from billing import create_app

app = create_app()
