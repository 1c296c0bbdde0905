from typing import Annotated

from fastapi import APIRouter, Depends

from payment_categorizer.api.dependencies import get_engine, get_pipeline
from payment_categorizer.classifiers.default_rules import default_rules
from payment_categorizer.manager import CategorizationEngine
from payment_categorizer.models import CategorizationRule
from payment_categorizer.services.categorization import CategorizationPipeline

router = APIRouter()


@router.get("/rules", response_model=list[CategorizationRule])
async def get_rules(
    engine: Annotated[CategorizationEngine, Depends(get_engine)],
) -> list[CategorizationRule]:
    return engine.rules


@router.get("/rules/defaults", response_model=list[CategorizationRule])
async def get_default_rules() -> list[CategorizationRule]:
    return default_rules()


@router.put("/rules")
async def update_rules(
    rules: list[CategorizationRule],
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> dict[str, int]:
    await pipeline.update_rules(rules)
    stats = pipeline.engine.get_stats()
    return {"active_rules": stats.active_rules, "invalid_rules": stats.invalid_rules}
