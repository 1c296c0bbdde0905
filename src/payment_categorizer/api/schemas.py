from pydantic import BaseModel, Field

from payment_categorizer.models import CategorizationResult, TrainingSample, TransactionInput


class CategorizeBatchRequest(BaseModel):
    transactions: list[TransactionInput]


class CategorizeBatchResponse(BaseModel):
    results: list[CategorizationResult]


class LearnRequest(BaseModel):
    payee: str | None = None
    counterparty_iban: str | None = None
    category_id: str = Field(min_length=1)
    # Optional text queued for the next classifier update.
    text: str | None = None


class ForgetRequest(BaseModel):
    payee: str | None = None
    counterparty_iban: str | None = None


class TrainingRequest(BaseModel):
    samples: list[TrainingSample]
