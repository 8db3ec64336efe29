"""
Route registration: includes all API routers into the FastAPI app.
"""

from fastapi import FastAPI

from routes.health import router as health_router
from routes.chat import router as chat_router
from routes.sessions import router as sessions_router
from routes.skills import router as skills_router
from routes.tool_servers import router as tool_servers_router
from routes.notes import router as notes_router


def register_routes(app: FastAPI):
    """Mount all API routers onto the app."""
    app.include_router(health_router)
    app.include_router(chat_router)
    app.include_router(sessions_router)
    app.include_router(skills_router)
    app.include_router(tool_servers_router)
    app.include_router(notes_router)
