"""
asgi.py -- Application assembly for TenantGate.

This is the ONLY file that mounts web/ onto the api/ app. It joins the two
layers into a single ASGI app without coupling them to each other.
api/main.py knows nothing about web/; web/routes.py borrows only the shared
rate limiter from api/limiter.py.

Run with:  uvicorn asgi:app --reload
"""

from api.main import app
from web.routes import router as web_router

# Mount the web UI router here, not in api/main.py.
# This keeps api/ and web/ independent -- neither imports from the other.
app.include_router(web_router, tags=["Web UI"])
