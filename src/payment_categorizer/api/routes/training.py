from typing import Annotated

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import StreamingResponse

from payment_categorizer.api.dependencies import get_pipeline, get_training_manager
from payment_categorizer.api.schemas import TrainingRequest
from payment_categorizer.core import settings
from payment_categorizer.logger import get_logger
from payment_categorizer.services.categorization import CategorizationPipeline
from payment_categorizer.services.training import TrainingManager

logger = get_logger(__name__)

router = APIRouter()


@router.post("/retrain")
async def retrain_model(
    req: TrainingRequest,
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> dict[str, int | str]:
    trained = await pipeline.retrain(req.samples)
    return {"status": "success", "trained": trained}


@router.post("/initialize")
async def initialize_from_transactions(
    req: TrainingRequest,
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> dict[str, int | str]:
    trained = await pipeline.initialize(req.samples)
    return {"status": "success", "trained": trained}


@router.post("/train-pending")
async def train_pending(
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> dict[str, int | str]:
    trained = await pipeline.train_pending()
    return {"status": "success", "trained": trained}


@router.post("/train")
async def train_bulk(
    training_manager: Annotated[TrainingManager, Depends(get_training_manager)],
) -> dict:
    return await training_manager.train_bulk()


@router.get("/train-stream")
async def train_stream(
    training_manager: Annotated[TrainingManager, Depends(get_training_manager)],
) -> StreamingResponse:
    return StreamingResponse(
        training_manager.stream(),
        media_type="text/event-stream",
        headers=settings.SSE_HEADERS,
    )


@router.post("/train-pause")
async def pause_training(
    training_manager: Annotated[TrainingManager, Depends(get_training_manager)],
) -> dict[str, str]:
    if training_manager.request_pause():
        logger.info("[TRAIN] Pause requested by user.")
        return {"status": "pausing"}
    return {"status": "idle"}


@router.get("/train-status")
async def get_training_status(
    training_manager: Annotated[TrainingManager, Depends(get_training_manager)],
) -> dict:
    return training_manager.get_status()


@router.post("/train-reset")
async def reset_training_state(
    training_manager: Annotated[TrainingManager, Depends(get_training_manager)],
) -> dict[str, int | str]:
    if training_manager.active:
        raise HTTPException(status_code=409, detail="Training in progress")
    cleared = training_manager.clear_seen_ids()
    return {"status": "cleared", "cleared": cleared}


@router.post("/clear-models")
async def clear_models(
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> dict[str, str]:
    await pipeline.clear_models()
    return {"status": "success", "message": "Learned payees and classifier cleared"}
