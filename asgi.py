"""
asgi.py -- ASGI entry point for TaskHub.

Run with:  uvicorn asgi:app --reload

Kept separate from api/main.py so deployment tooling has one stable import
path even if the adapter grows more routers or sub-applications.
"""

from api.main import app

__all__ = ["app"]
