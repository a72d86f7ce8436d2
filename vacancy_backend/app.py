import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from vacancy_backend.application import (
    LiveReconciliationController,
    VacancyService,
    configure_controller,
    configure_vacancy_service,
)
from vacancy_backend.config import Settings
from vacancy_backend.infrastructure import (
    ChangeFeed,
    HttpRecordStore,
    InMemoryRecordStore,
    RecordStore,
    configure_change_feed,
    load_seed_file,
)
from vacancy_backend.routes import analytics, vacancies

logger = logging.getLogger(__name__)


def build_store(settings: Settings, feed: ChangeFeed) -> RecordStore:
    if settings.store_url:
        logger.info("using record store at %s (table %s)", settings.store_url, settings.store_table)
        return HttpRecordStore(
            settings.store_url,
            settings.store_key,
            table=settings.store_table,
            timeout=settings.store_timeout,
            default_limit=settings.fetch_limit,
        )
    records = []
    if settings.seed_file is not None:
        records = load_seed_file(settings.seed_file)
    logger.info("using in-memory record store with %d vacancies", len(records))
    return InMemoryRecordStore(records, feed=feed)


def create_app(settings: Settings | None = None, store: RecordStore | None = None) -> FastAPI:
    settings = settings or Settings.from_env()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    feed = ChangeFeed()
    configure_change_feed(feed)
    if store is None:
        store = build_store(settings, feed)
    elif isinstance(store, InMemoryRecordStore) and store.feed is None:
        store.feed = feed

    controller = LiveReconciliationController(store, feed, settings=settings)
    configure_controller(controller)
    configure_vacancy_service(VacancyService(store, settings=settings))

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        await controller.start()
        try:
            yield
        finally:
            await controller.close()
            await store.close()

    app = FastAPI(title="Vacancy Analytics API", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(vacancies.router, prefix="/api")
    app.include_router(analytics.router, prefix="/api")

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "Vacancy Analytics API",
                "docs": "/docs",
                "health": "/api/analytics/status",
            }
        )

    return app


app = create_app()
