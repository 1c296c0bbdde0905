import os
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from payment_categorizer.api.routes import categorize, learning, rules, training
from payment_categorizer.core import settings
from payment_categorizer.errors import ConcurrentMutationConflict, InvalidLearnInput
from payment_categorizer.integration.storage import (
    JsonLearnedPayeeRepository,
    JsonRuleRepository,
    JsonTrainingSampleSource,
    PickleModelRepository,
)
from payment_categorizer.logger import get_logger, setup_logging
from payment_categorizer.manager import CategorizationEngine
from payment_categorizer.services.categorization import CategorizationPipeline
from payment_categorizer.services.training import TrainingManager

logger = get_logger(__name__)

RETRY_AFTER_SECONDS = "5"


def build_pipeline(data_dir: str) -> CategorizationPipeline:
    payee_repository = JsonLearnedPayeeRepository(os.path.join(data_dir, "learned_payees.json"))
    model_repository = PickleModelRepository(os.path.join(data_dir, "classifier.pkl"))
    rule_repository = JsonRuleRepository(os.path.join(data_dir, "rules.json"))
    sample_source = JsonTrainingSampleSource(os.path.join(data_dir, "training_samples.json"))

    engine = CategorizationEngine.from_settings(
        rule_repository.load_rules() if rule_repository.exists() else None
    )
    training_manager = TrainingManager(
        engine=engine,
        source=sample_source,
        page_size=settings.TRAINING_PAGE_SIZE,
        model_sink=model_repository,
    )
    return CategorizationPipeline(
        engine=engine,
        training=training_manager,
        payee_repository=payee_repository,
        model_repository=model_repository,
        rule_repository=rule_repository,
    )


def create_app() -> FastAPI:
    setup_logging()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Initializing categorization engine...")
        settings.log_environment()

        pipeline = build_pipeline(settings.DATA_DIR)
        loaded = await pipeline.load_payees()
        if not pipeline.load_model():
            if settings.use_default_samples():
                seeded = pipeline.seed_model()
                logger.info("No saved classifier model found; seeded with %d built-in samples.", seeded)
            else:
                logger.info("No saved classifier model found; starting untrained.")

        app.state.engine = pipeline.engine
        app.state.training_manager = pipeline.training
        app.state.pipeline = pipeline

        stats = pipeline.engine.get_stats()
        logger.info(
            "Engine ready: %d rules, %d learned payees (%d loaded), %d ML classes.",
            stats.active_rules,
            stats.learned_payees,
            loaded,
            stats.ml_classes,
        )
        yield
        logger.info("Service shutting down.")

    app = FastAPI(title="Payment Categorizer", lifespan=lifespan)

    @app.exception_handler(InvalidLearnInput)
    async def invalid_learn_input_handler(request: Request, exc: InvalidLearnInput) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(ConcurrentMutationConflict)
    async def conflict_handler(request: Request, exc: ConcurrentMutationConflict) -> JSONResponse:
        logger.warning("[ENGINE] %s", exc)
        return JSONResponse(
            status_code=409,
            content={"detail": str(exc), "retryable": exc.retryable},
            headers={"Retry-After": RETRY_AFTER_SECONDS},
        )

    app.include_router(categorize.router)
    app.include_router(learning.router)
    app.include_router(rules.router)
    app.include_router(training.router)

    return app


app = create_app()
