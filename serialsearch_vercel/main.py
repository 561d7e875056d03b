"""
Entry point for Vercel.

This module exposes the FastAPI application instance defined in the
`serialsearch.main` module. Vercel's Python runtime imports this file
and looks for an object called `app`, which it mounts directly as an
ASGI application.

Configuration comes from the environment; see `serialsearch.config`
for the variables that are read (`SERIALSEARCH_DATA`,
`ADMIN_PASSWORD`, `CRAWL_ON_STARTUP` and friends).
"""

from serialsearch.main import app as app  # noqa: F401  re-export FastAPI instance
