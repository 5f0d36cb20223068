#!/usr/bin/env python
# -*- coding:utf-8 -*-

import logging
import sys
from flask import Flask
from werkzeug.middleware.proxy_fix import ProxyFix

# create the app
app = Flask(__name__)

# Defaults from config.py, then an optional deployment file on top
app.config.from_object('config')
app.config.from_envvar('GALLERY_SETTINGS', silent=True)

# Session carries password grants and consent flags
app.config.setdefault('SESSION_COOKIE_HTTPONLY', True)
app.config.setdefault('SESSION_COOKIE_SAMESITE', 'Lax')

# Behind nginx: trust one hop for scheme/host so HTTPS detection works
app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=1)

if not app.debug:
    # errors to stderr (captured by Docker/gunicorn)
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.ERROR)
    handler.setFormatter(logging.Formatter(
        '[%(asctime)s] %(levelname)s in %(module)s: %(message)s'
    ))
    app.logger.addHandler(handler)
    app.logger.setLevel(logging.ERROR)

@app.errorhandler(Exception)
def handle_exception(e):
    # HTTPExceptions keep their own status
    if hasattr(e, 'code'):
        return e
    app.logger.error(f'Unhandled exception: {str(e)}', exc_info=True)
    return "Internal Server Error", 500
