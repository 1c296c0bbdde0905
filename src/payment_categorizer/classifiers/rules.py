import re
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Optional, Pattern

from payment_categorizer.errors import InvalidPattern
from payment_categorizer.logger import get_logger
from payment_categorizer.models import CategorizationRule, RuleType, TransactionInput

logger = get_logger(__name__)

_TEXT_RULE_TYPES = {RuleType.CONTAINS, RuleType.STARTS_WITH, RuleType.ENDS_WITH}


@dataclass(frozen=True)
class RuleMatch:
    rule: CategorizationRule
    stop_processing: bool


@dataclass(frozen=True)
class _CompiledRule:
    rule: CategorizationRule
    regex: Optional[Pattern[str]]
    lowercase_pattern: str


class RuleMatcher:
    """Priority-ordered, read-only view over a set of categorization rules.

    Rules are sorted once on construction: ascending ``priority``, ties keep
    the order the rules were supplied in. Inactive rules are dropped up front
    and regex patterns are compiled here, so ``match`` never mutates state and
    can be called from several threads at once.
    """

    def __init__(self, rules: Iterable[CategorizationRule] = ()):
        self.invalid_patterns: list[InvalidPattern] = []
        ordered = sorted(
            (rule for rule in rules if rule.is_active),
            key=lambda rule: rule.priority,
        )
        self._rules: tuple[_CompiledRule, ...] = tuple(
            compiled for compiled in (self._compile(rule) for rule in ordered) if compiled is not None
        )

    def _compile(self, rule: CategorizationRule) -> _CompiledRule | None:
        regex = None
        if rule.rule_type == RuleType.REGEX:
            try:
                regex = re.compile(rule.pattern, re.IGNORECASE)
            except re.error as exc:
                error = InvalidPattern(rule.id, rule.pattern, str(exc))
                self.invalid_patterns.append(error)
                logger.warning("[RULES] Skipping rule '%s': %s", rule.name, error)
                return None
        elif rule.rule_type in _TEXT_RULE_TYPES and not rule.pattern:
            logger.warning("[RULES] Rule '%s' has an empty pattern and never matches.", rule.name)
        return _CompiledRule(rule=rule, regex=regex, lowercase_pattern=rule.pattern.lower())

    @property
    def rules(self) -> list[CategorizationRule]:
        return [compiled.rule for compiled in self._rules]

    def __len__(self) -> int:
        return len(self._rules)

    def active_rule_count(self) -> int:
        """Active rules including those skipped for an invalid pattern."""
        return len(self._rules) + len(self.invalid_patterns)

    def match(self, transaction: TransactionInput) -> RuleMatch | None:
        description = transaction.description or ""
        lowered = description.lower()

        for compiled in self._rules:
            if self._matches(compiled, transaction, description, lowered):
                rule = compiled.rule
                logger.debug(
                    "[RULES] Rule '%s' (%s, priority %s) matched transaction %s%s",
                    rule.name,
                    rule.rule_type.value,
                    rule.priority,
                    transaction.id,
                    " [stop]" if rule.stop_processing else "",
                )
                # First hit in priority order wins; a stop flag only makes that explicit.
                return RuleMatch(rule=rule, stop_processing=rule.stop_processing)
        return None

    @staticmethod
    def _matches(
        compiled: _CompiledRule,
        transaction: TransactionInput,
        description: str,
        lowered: str,
    ) -> bool:
        rule_type = compiled.rule.rule_type
        pattern = compiled.lowercase_pattern

        if rule_type == RuleType.REGEX:
            return compiled.regex is not None and compiled.regex.search(description) is not None
        if rule_type == RuleType.CONTAINS:
            return bool(pattern) and pattern in lowered
        if rule_type == RuleType.STARTS_WITH:
            return bool(pattern) and lowered.startswith(pattern)
        if rule_type == RuleType.ENDS_WITH:
            return bool(pattern) and lowered.endswith(pattern)
        if rule_type == RuleType.VARIABLE_SYMBOL:
            return transaction.variable_symbol is not None and transaction.variable_symbol == compiled.rule.pattern
        if rule_type == RuleType.CONSTANT_SYMBOL:
            return transaction.constant_symbol is not None and transaction.constant_symbol == compiled.rule.pattern
        if rule_type == RuleType.SPECIFIC_SYMBOL:
            return transaction.specific_symbol is not None and transaction.specific_symbol == compiled.rule.pattern
        if rule_type == RuleType.IS_CREDIT:
            return transaction.is_credit
        if rule_type == RuleType.IS_DEBIT:
            return not transaction.is_credit
        return False
