"""FastAPI entrypoint for the LMS grading backend."""

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from lms_grading.app_logger import get_logger, setup_logging
from lms_grading.config import Settings
from lms_grading.config import settings as default_settings
from lms_grading.database import Database
from lms_grading.errors import AppError
from lms_grading.routers import courses as courses_router_module
from lms_grading.routers import grades as grades_router_module

logger = get_logger("main")


def create_app(settings: Settings | None = None, database: Database | None = None) -> FastAPI:
    settings = settings or default_settings
    setup_logging(settings.LOG_LEVEL)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Create the schema on start, release the connection pool on stop."""
        app.state.db.create_db_and_tables()
        logger.info(
            "Database ready at %s", app.state.db.engine.url.render_as_string(hide_password=True)
        )
        yield
        app.state.db.dispose()

    app = FastAPI(title="LMS Grading Backend", lifespan=lifespan)
    app.state.settings = settings
    app.state.db = database or Database.from_settings(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
            message = exc.message if settings.is_development else "Something went wrong"
        else:
            message = exc.message
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "status": exc.status, "message": message},
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Malformed request bodies are reported like any other validation error."""
        errors = {}
        for error in exc.errors():
            field_path = [str(part) for part in error.get("loc", []) if part != "body"]
            field_name = ".".join(field_path) or "body"
            if error.get("type") == "missing":
                errors[field_name] = "Field is required"
            else:
                errors[field_name] = error.get("msg", "Invalid input")
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "success": False,
                "status": "fail",
                "message": "Invalid request data",
                "errors": errors,
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        content = {"success": False, "status": "error", "message": "Something went wrong"}
        if settings.is_development:
            content["error"] = repr(exc)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=content)

    # Routers
    app.include_router(grades_router_module.router, prefix="/admin/grades", tags=["grades"])
    app.include_router(courses_router_module.router, prefix="/admin", tags=["courses"])

    @app.get("/health")
    def health():
        return {"status": "ok", "environment": settings.ENVIRONMENT}

    return app


app = create_app()
