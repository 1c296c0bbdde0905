from fastapi import HTTPException, Request

from payment_categorizer.manager import CategorizationEngine
from payment_categorizer.services.categorization import CategorizationPipeline
from payment_categorizer.services.training import TrainingManager


def get_engine(request: Request) -> CategorizationEngine:
    engine = getattr(request.app.state, "engine", None)
    if not engine:
        raise HTTPException(status_code=500, detail="Engine not initialized")
    return engine


def get_training_manager(request: Request) -> TrainingManager:
    manager = getattr(request.app.state, "training_manager", None)
    if not manager:
        raise HTTPException(status_code=500, detail="Service not initialized")
    return manager


def get_pipeline(request: Request) -> CategorizationPipeline:
    pipeline = getattr(request.app.state, "pipeline", None)
    if not pipeline:
        raise HTTPException(status_code=500, detail="Service not initialized")
    return pipeline
