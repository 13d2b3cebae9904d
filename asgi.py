"""
asgi.py -- ASGI entry point for Postboard.

Run with:  uvicorn asgi:app --reload

The front end is a separate deployment; this process serves only /api/v1.
"""

from api.main import app

__all__ = ["app"]
