"""
YouTube recipe extraction API entry point
"""
import uvicorn
from app.core.app import create_app
from app.core.config import get_settings

settings = get_settings()
app = create_app()

if __name__ == "__main__":
    # Jobs run inside the worker that accepted them; live progress and
    # cancellation cleanup are only visible to that worker.
    uvicorn.run(
        "main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
        workers=None if settings.DEBUG else max(1, settings.UVICORN_WORKERS),
        log_level=settings.LOG_LEVEL.lower()
    )
