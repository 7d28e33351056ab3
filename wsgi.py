"""Gunicorn entry point: gunicorn wsgi:application"""
import logging

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(name)s: %(message)s'
)

from run import app

application = app
