from payment_categorizer.models import CategorizationRule, RuleType

DEFAULT_PRIORITY = 50

# (category id, rule type, pattern)
_DEFAULT_PATTERNS: tuple[tuple[str, RuleType, str], ...] = (
    ("cat_groceries", RuleType.CONTAINS, "albert"),
    ("cat_groceries", RuleType.CONTAINS, "billa"),
    ("cat_groceries", RuleType.CONTAINS, "lidl"),
    ("cat_groceries", RuleType.CONTAINS, "kaufland"),
    ("cat_groceries", RuleType.CONTAINS, "tesco"),
    ("cat_groceries", RuleType.CONTAINS, "rohlik"),
    ("cat_dining", RuleType.CONTAINS, "mcdonald"),
    ("cat_dining", RuleType.CONTAINS, "starbucks"),
    ("cat_dining", RuleType.REGEX, r"\b(wolt|foodora|uber\s*eats)\b"),
    ("cat_transport", RuleType.REGEX, r"\b(uber|bolt|liftago)\b"),
    ("cat_transport", RuleType.CONTAINS, "ceske drahy"),
    ("cat_transport", RuleType.CONTAINS, "regiojet"),
    ("cat_transport", RuleType.REGEX, r"\b(shell|omv|benzina|mol)\b"),
    ("cat_utilities", RuleType.REGEX, r"\b(cez|pre|innogy|e\.on)\b"),
    ("cat_utilities", RuleType.REGEX, r"\b(o2|t-mobile|vodafone)\b"),
    ("cat_entertainment", RuleType.CONTAINS, "netflix"),
    ("cat_entertainment", RuleType.CONTAINS, "spotify"),
    ("cat_entertainment", RuleType.CONTAINS, "hbo max"),
    ("cat_entertainment", RuleType.CONTAINS, "disney+"),
    ("cat_shopping", RuleType.CONTAINS, "alza"),
    ("cat_shopping", RuleType.CONTAINS, "amazon"),
    ("cat_shopping", RuleType.CONTAINS, "ikea"),
    ("cat_health", RuleType.REGEX, r"\b(lekarna|pharmacy|dr\.max|benu)\b"),
    ("cat_travel", RuleType.REGEX, r"\b(booking\.com|airbnb|ryanair|wizz\s*air)\b"),
    ("cat_income", RuleType.REGEX, r"\b(mzda|salary|vyplata)\b"),
    ("cat_taxes", RuleType.CONSTANT_SYMBOL, "1148"),
    ("cat_investments", RuleType.REGEX, r"\b(trading\s*212|degiro|xtb|coinbase)\b"),
)


def default_rules() -> list[CategorizationRule]:
    """Built-in rules for common merchants; user rules usually go first."""
    rules: list[CategorizationRule] = []
    for index, (category_id, rule_type, pattern) in enumerate(_DEFAULT_PATTERNS, start=1):
        rules.append(CategorizationRule(
            id=f"default_{index:03d}",
            name=f"{category_id.removeprefix('cat_').title()}: {pattern}",
            rule_type=rule_type,
            pattern=pattern,
            category_id=category_id,
            priority=DEFAULT_PRIORITY,
        ))
    return rules
