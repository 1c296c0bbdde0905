from typing import Annotated

from fastapi import APIRouter, Depends

from payment_categorizer.api.dependencies import get_engine, get_pipeline
from payment_categorizer.api.schemas import ForgetRequest, LearnRequest
from payment_categorizer.logger import get_logger
from payment_categorizer.manager import CategorizationEngine
from payment_categorizer.models import LearnedPayeeEntry
from payment_categorizer.services.categorization import CategorizationPipeline

logger = get_logger(__name__)

router = APIRouter()


@router.post("/learn")
async def learn(
    req: LearnRequest,
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> dict[str, str | int]:
    written = await pipeline.learn(
        req.payee,
        req.counterparty_iban,
        req.category_id,
        text=req.text,
    )
    return {"status": "success", "entries": len(written)}


@router.post("/forget")
async def forget(
    req: ForgetRequest,
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> dict[str, bool]:
    forgotten = await pipeline.forget(req.payee, req.counterparty_iban)
    return {"forgotten": forgotten}


@router.get("/learned-payees", response_model=list[LearnedPayeeEntry])
async def list_learned_payees(
    engine: Annotated[CategorizationEngine, Depends(get_engine)],
) -> list[LearnedPayeeEntry]:
    return engine.list_learned_payees()


@router.get("/learned-payees/export")
async def export_learned_payees(
    engine: Annotated[CategorizationEngine, Depends(get_engine)],
) -> dict[str, str]:
    return engine.export_learned_payees()


@router.post("/learned-payees/import")
async def import_learned_payees(
    payees: dict[str, str],
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> dict[str, int]:
    count = await pipeline.import_payees(payees)
    logger.info("[PAYEES] Imported %d learned payees via API", count)
    return {"imported": count}


@router.post("/learned-payees/load")
async def load_learned_payees(
    pipeline: Annotated[CategorizationPipeline, Depends(get_pipeline)],
) -> dict[str, int]:
    return {"loaded": await pipeline.load_payees()}
