"""
asgi.py -- ASGI entry point for Pulse.

Run with:  uvicorn asgi:app --reload

Kept separate from api/main.py so process managers point at one stable
module path regardless of how the api/ package is organised internally.
"""

from api.main import app

__all__ = ["app"]
