import os

import uvicorn

from payment_categorizer.app import app, build_pipeline
from payment_categorizer.core import settings
from payment_categorizer.logger import get_logger, get_logging_config, setup_logging

logger = get_logger(__name__)


def main() -> None:
    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "8000"))
    uvicorn.run(app, host=host, port=port, log_config=get_logging_config())


def seed_model() -> None:
    """Train the built-in corpus and write the model to DATA_DIR, replacing any saved one."""
    setup_logging()
    pipeline = build_pipeline(settings.DATA_DIR)
    pipeline.engine.classifier.clear()
    trained = pipeline.seed_model()
    stats = pipeline.engine.get_stats()
    logger.info(
        "[ML] Saved seed model: %d samples, %d classes, vocabulary %d.",
        trained,
        stats.ml_classes,
        stats.ml_vocabulary_size,
    )


if __name__ == "__main__":
    main()
