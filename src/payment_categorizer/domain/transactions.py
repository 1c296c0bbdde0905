import re
from typing import Any

from payment_categorizer.logger import get_logger
from payment_categorizer.models import TrainingSample, TransactionInput

logger = get_logger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


def _optional_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def parse_amount(value: Any) -> float:
    """Parse ``-1 234,50``, ``1.234,50``, ``1,234.50`` or plain numbers.

    Whitespace (including non-breaking spaces) is a thousands separator; when
    both ``,`` and ``.`` appear, the last one is the decimal mark.
    """
    if value is None or value == "":
        return 0.0
    if isinstance(value, (int, float)):
        return float(value)
    text = _WHITESPACE_RE.sub("", str(value))
    if "," in text and "." in text:
        thousands = "." if text.rfind(",") > text.rfind(".") else ","
        text = text.replace(thousands, "")
    try:
        return float(text.replace(",", "."))
    except ValueError:
        logger.warning("[TX] Unparseable amount %r, using 0.", value)
        return 0.0


def build_transaction_input(raw: dict[str, Any]) -> TransactionInput:
    """Map a stored bank transaction record onto the engine's input shape.

    The host stores counterparty details as ``counterpartyName`` /
    ``counterpartyIban`` and the direction as ``type`` (``credit``/``debit``);
    amounts usually arrive as strings.
    """
    amount = parse_amount(raw.get("amount"))
    tx_type = str(raw.get("type") or "").lower()
    if tx_type in {"credit", "debit"}:
        is_credit = tx_type == "credit"
    else:
        is_credit = bool(raw.get("isCredit", amount >= 0))

    return TransactionInput(
        id=str(raw.get("id", "")),
        description=_optional_str(raw.get("description")),
        counterparty=_optional_str(raw.get("counterpartyName") or raw.get("counterparty")),
        counterparty_iban=_optional_str(raw.get("counterpartyIban")),
        variable_symbol=_optional_str(raw.get("variableSymbol")),
        constant_symbol=_optional_str(raw.get("constantSymbol")),
        specific_symbol=_optional_str(raw.get("specificSymbol")),
        amount=amount,
        is_credit=is_credit,
    )


def build_training_sample(raw: dict[str, Any]) -> TrainingSample | None:
    """Training sample from a categorized record, or None when it has no category."""
    category_id = _optional_str(raw.get("categoryId"))
    if category_id is None:
        return None
    text = build_transaction_input(raw).combined_text()
    if not text:
        return None
    return TrainingSample(text=text, category_id=category_id)
