"""
asgi.py -- Application assembly for Cornerstone.

This is the ONLY file that mounts both api/ and web/ routes. It joins the two
layers into a single ASGI app. api/main.py knows nothing about web/; web/
reaches into api/ only for the shared rate limiter (api/limiter.py), so API
and browser logins draw on one counter per client.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app
from web.routes import router as web_router

# Mount the web UI router here, not in api/main.py.
app.include_router(web_router, tags=["Web UI"])
