#resume_tailor/app/main.py

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from resume_tailor.app.api.routes import api_router
from resume_tailor.app.config import settings
from resume_tailor.app.core.errors import ResumeTailorError

logger = logging.getLogger(__name__)


class ResumeTailorApp:
    def __init__(self):
        logging.basicConfig(
            level=settings.LOG_LEVEL.upper(),
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        self.app = FastAPI(
            title="Resume Tailor API",
            description="Asynchronous resume customization against a job description using LLM stages.",
            version="0.3.0"
        )
        self._configure_cors()
        self._register_error_handlers()
        self.include_routers()

    def _configure_cors(self):
        origins = [o.strip() for o in settings.BACKEND_CORS_ORIGINS.split(",") if o.strip()]
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=origins,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    def _register_error_handlers(self):
        @self.app.exception_handler(ResumeTailorError)
        async def _resume_tailor_error(request: Request, exc: ResumeTailorError):
            if exc.status_code >= 500:
                logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
            return JSONResponse(status_code=exc.status_code,
                                content={"status": "error", "message": exc.message})

    def include_routers(self):
        self.app.include_router(api_router)


def get_app():
    """Entrypoint for ASGI"""
    return ResumeTailorApp().app

# Run with 'uvicorn resume_tailor.app.main:app'
app = get_app()
