"""Main FastAPI application for the task series engine."""
import logging
from typing import Optional

from fastapi import FastAPI
from sqlalchemy.engine import Engine

from taskseries.config import LOG_LEVEL
from taskseries.db.init import init_db
from taskseries.middleware.cors import add_cors_middleware
from taskseries.routers.tasks import router as tasks_router
from taskseries.services.task_session import SessionRegistry
from taskseries.services.task_store import SqlTaskStore

logger = logging.getLogger(__name__)


def create_app(engine: Optional[Engine] = None) -> FastAPI:
    """Build the API application around ``engine`` (the configured database by default)."""
    logging.basicConfig(level=LOG_LEVEL)
    if engine is None:
        from taskseries.db.config import engine

    app = FastAPI(
        title="Task Series API",
        description="Recurring task series management: generation, regeneration, propagation and renewal",
        version="1.0.0",
    )
    add_cors_middleware(app)
    app.state.engine = engine
    app.state.sessions = SessionRegistry(lambda user_id: SqlTaskStore(engine, user_id))

    @app.on_event("startup")
    async def startup_event():
        """Create tables on startup."""
        try:
            init_db(engine)
        except Exception as e:
            logger.warning(f"Database initialization failed: {str(e)}")
            logger.warning("Server will continue but database operations may fail.")

    @app.on_event("shutdown")
    async def shutdown_event():
        await app.state.sessions.close()

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        return {"status": "healthy", "version": "1.0.0"}

    app.include_router(tasks_router, prefix="/api")  # Task endpoints: /api/{user_id}/tasks
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "taskseries.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
    )
