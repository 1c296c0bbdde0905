from typing import Annotated

from fastapi import APIRouter, Depends

from payment_categorizer.api.dependencies import get_engine, get_pipeline
from payment_categorizer.api.schemas import CategorizeBatchRequest, CategorizeBatchResponse
from payment_categorizer.manager import CategorizationEngine
from payment_categorizer.models import CategorizationResult, EngineStats, TransactionInput
from payment_categorizer.services.categorization import CategorizationPipeline

router = APIRouter()


@router.post("/categorize", response_model=CategorizationResult)
async def categorize_transaction(
    transaction: TransactionInput,
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> CategorizationResult:
    return await pipeline.predict(transaction)


@router.post("/categorize/batch", response_model=CategorizeBatchResponse)
async def categorize_batch(
    req: CategorizeBatchRequest,
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> CategorizeBatchResponse:
    results = await pipeline.predict_batch(req.transactions)
    return CategorizeBatchResponse(results=results)


@router.get("/stats", response_model=EngineStats)
async def get_stats(
    engine: Annotated[CategorizationEngine, Depends(get_engine)],
) -> EngineStats:
    return engine.get_stats()
