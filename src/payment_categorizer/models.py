from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


class TransactionInput(BaseModel):
    id: str
    description: Optional[str] = None
    counterparty: Optional[str] = None
    counterparty_iban: Optional[str] = None
    variable_symbol: Optional[str] = None
    constant_symbol: Optional[str] = None
    specific_symbol: Optional[str] = None
    amount: float = 0.0
    is_credit: bool = False

    model_config = {"frozen": True}

    def combined_text(self) -> str:
        """Text fed to the classifier: description followed by counterparty."""
        parts = [part for part in (self.description, self.counterparty) if part]
        return " ".join(parts)


class RuleType(str, Enum):
    REGEX = "Regex"
    CONTAINS = "Contains"
    STARTS_WITH = "StartsWith"
    ENDS_WITH = "EndsWith"
    VARIABLE_SYMBOL = "VariableSymbol"
    CONSTANT_SYMBOL = "ConstantSymbol"
    SPECIFIC_SYMBOL = "SpecificSymbol"
    IS_CREDIT = "IsCredit"
    IS_DEBIT = "IsDebit"

    @classmethod
    def parse(cls, value: "str | RuleType") -> "RuleType":
        if isinstance(value, RuleType):
            return value
        key = str(value).strip().lower()
        try:
            return _RULE_TYPE_ALIASES[key]
        except KeyError:
            raise ValueError(f"Unknown rule type: {value}") from None


_RULE_TYPE_ALIASES: dict[str, RuleType] = {
    "regex": RuleType.REGEX,
    "contains": RuleType.CONTAINS,
    "startswith": RuleType.STARTS_WITH,
    "starts_with": RuleType.STARTS_WITH,
    "endswith": RuleType.ENDS_WITH,
    "ends_with": RuleType.ENDS_WITH,
    "variablesymbol": RuleType.VARIABLE_SYMBOL,
    "variable_symbol": RuleType.VARIABLE_SYMBOL,
    "vs": RuleType.VARIABLE_SYMBOL,
    "constantsymbol": RuleType.CONSTANT_SYMBOL,
    "constant_symbol": RuleType.CONSTANT_SYMBOL,
    "ks": RuleType.CONSTANT_SYMBOL,
    "specificsymbol": RuleType.SPECIFIC_SYMBOL,
    "specific_symbol": RuleType.SPECIFIC_SYMBOL,
    "ss": RuleType.SPECIFIC_SYMBOL,
    "iscredit": RuleType.IS_CREDIT,
    "is_credit": RuleType.IS_CREDIT,
    "credit": RuleType.IS_CREDIT,
    "isdebit": RuleType.IS_DEBIT,
    "is_debit": RuleType.IS_DEBIT,
    "debit": RuleType.IS_DEBIT,
}


class CategorizationRule(BaseModel):
    id: str
    name: str
    rule_type: RuleType
    pattern: str = ""
    category_id: str
    priority: int = 50
    is_active: bool = True
    stop_processing: bool = False

    @field_validator("rule_type", mode="before")
    @classmethod
    def _parse_rule_type(cls, value: object) -> RuleType:
        return RuleType.parse(value)  # type: ignore[arg-type]


class PayeeTier(str, Enum):
    # Values match the tags the rule-management screen displays.
    PAYEE_IBAN = "iban_default"
    IBAN_ONLY = "iban_only_default"
    PAYEE_ONLY = "payee_default"


class LearnedPayeeEntry(BaseModel):
    normalized_payee: Optional[str] = None
    counterparty_iban: Optional[str] = None
    category_id: str
    tier: PayeeTier
    updated_at: datetime


class TrainingSample(BaseModel):
    text: str
    category_id: str


class RuleSource(BaseModel):
    type: Literal["Rule"] = "Rule"
    rule_id: str
    rule_name: str


class ExactMatchSource(BaseModel):
    type: Literal["ExactMatch"] = "ExactMatch"
    payee: str
    tier: Optional[PayeeTier] = None


class MachineLearningSource(BaseModel):
    type: Literal["MachineLearning"] = "MachineLearning"
    confidence: float


class ManualSource(BaseModel):
    type: Literal["Manual"] = "Manual"


CategorizationSource = Annotated[
    Union[RuleSource, ExactMatchSource, MachineLearningSource, ManualSource],
    Field(discriminator="type"),
]


class MatchResult(BaseModel):
    type: Literal["Match"] = "Match"
    category_id: str
    source: CategorizationSource

    @property
    def confidence(self) -> float:
        return 1.0


class SuggestionResult(BaseModel):
    type: Literal["Suggestion"] = "Suggestion"
    category_id: str
    confidence: float = Field(ge=0.0, lt=1.0)


class NoMatchResult(BaseModel):
    type: Literal["None"] = "None"

    @property
    def confidence(self) -> float:
        return 0.0


CategorizationResult = Annotated[
    Union[MatchResult, SuggestionResult, NoMatchResult],
    Field(discriminator="type"),
]


def result_category_id(result: "MatchResult | SuggestionResult | NoMatchResult") -> str | None:
    if isinstance(result, NoMatchResult):
        return None
    return result.category_id


def has_category(result: "MatchResult | SuggestionResult | NoMatchResult") -> bool:
    return result_category_id(result) is not None


class EngineStats(BaseModel):
    active_rules: int
    learned_payees: int
    ml_classes: int
    ml_vocabulary_size: int
    invalid_rules: int = 0
    ml_documents: int = 0
