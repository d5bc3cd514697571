import asyncio
from contextlib import asynccontextmanager
from datetime import timedelta

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import structlog

from rentalscout.api.deps import Services, build_services
from rentalscout.api.routes import router
from rentalscout.core.config import settings
from rentalscout.core.errors import InputValidationError, RentalScoutError
from rentalscout.core.logging import configure_logging
from rentalscout.db.client import LanceDBHandle
from rentalscout.state.store import ConversationStore

logger = structlog.get_logger()

STATUS_BY_KIND = {
    "ValidationError": 400,
    "InvalidToolArgs": 400,
    "Unauthorized": 401,
    "NotFound": 404,
    "EmbeddingUnavailable": 503,
    "AssistantUnavailable": 503,
    "SearchUnavailable": 503,
    "StoreUnavailable": 503,
}


async def retention_sweep(store: ConversationStore, max_age: timedelta, interval: float) -> None:
    while True:
        await asyncio.sleep(interval)
        await store.purge_older_than(max_age)


def create_app(services: Services | None = None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging(settings.LOG_LEVEL, settings.LOG_JSON)
        handle = None
        if services is None:
            handle = LanceDBHandle().acquire()
            app.state.services = build_services(handle)
        sweeper = asyncio.create_task(retention_sweep(
            app.state.services.conversations,
            timedelta(days=settings.CONVERSATION_RETENTION_DAYS),
            settings.RETENTION_SWEEP_INTERVAL,
        ))
        try:
            yield
        finally:
            sweeper.cancel()
            if handle is not None:
                handle.release()

    app = FastAPI(title="Rental Agent API", lifespan=lifespan)
    if services is not None:
        app.state.services = services

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RentalScoutError)
    async def rentalscout_error_handler(request: Request, exc: RentalScoutError):
        status = STATUS_BY_KIND.get(exc.kind, 500)
        if status >= 500:
            logger.error("Request failed", path=request.url.path, kind=exc.kind, error=exc.message)
        return JSONResponse(
            status_code=status,
            content={"success": False, "message": exc.message, "error": exc.to_dict()},
        )

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(request: Request, exc: RequestValidationError):
        problems = [
            {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
            for err in exc.errors()
        ]
        error = InputValidationError("Invalid request", errors=problems)
        return await rentalscout_error_handler(request, error)

    app.include_router(router)

    @app.get("/health")
    async def health_check():
        return {"status": "ok"}

    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("rentalscout.main:app", host="0.0.0.0", port=8000, reload=True)
