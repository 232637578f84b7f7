"""FastAPI web layer for Bullion Rate.

Re-exports the application factory so consumers can import directly:
    from Bullion_Rate.web import create_app
"""

from Bullion_Rate.web.app import create_app

__all__ = ["create_app"]
