from __future__ import annotations

import logging
from typing import Any, Iterable, List, Mapping, Optional

from .conditions import ConditionEvaluator, is_supported_operator
from .config import EngineSettings, get_settings
from .errors import ConditionDepthError, RuleEvaluationError
from .schema import (
    ACTIONS,
    ELEMENT_TYPES,
    AffectedElement,
    Condition,
    ConditionalLogicAction,
    ConditionalLogicContext,
    ConditionalLogicResult,
    ConditionGroup,
    Rule,
    RuleValidationResult,
)

logger = logging.getLogger(__name__)

_ACTION_NAMES = {a.lower() for a in ACTIONS}


def sort_by_priority(rules: Iterable[Rule]) -> List[Rule]:
    # sorted() is stable: equal priorities keep declaration order
    return sorted((r for r in rules if r.enabled), key=lambda r: r.priority)


def combine(logical_operator: Optional[str], results: List[bool]) -> bool:
    op = (logical_operator or "AND").upper()
    if op == "OR":
        return any(results)
    if op == "NOT":
        # "not all true": NAND over the group, not a per-term negation
        return not all(results)
    return all(results)


def _describe(context: Optional[ConditionalLogicContext]) -> str:
    if context is None:
        return "-"
    return f"page={context.current_page_id or '-'} task={context.current_task_id or '-'} trigger={context.trigger or '-'}"


class RuleEngine:
    """Evaluates condition trees and turns matching rules into prioritised actions."""

    def __init__(self, settings: Optional[EngineSettings] = None, evaluator: Optional[ConditionEvaluator] = None):
        self.settings = settings or get_settings()
        self.evaluator = evaluator or ConditionEvaluator(self.settings)

    @property
    def max_depth(self) -> int:
        return self.settings.max_condition_depth

    def evaluate_condition_group(self, group: ConditionGroup, form_data: Mapping[str, Any], depth: int = 1) -> bool:
        if depth > self.max_depth:
            raise ConditionDepthError(depth, self.max_depth)
        if not group.conditions:
            return True
        results: List[bool] = []
        for node in group.conditions:
            if isinstance(node, ConditionGroup):
                results.append(self.evaluate_condition_group(node, form_data, depth + 1))
            else:
                results.append(self.evaluator.evaluate(node, form_data))
        return combine(group.logical_operator, results)

    def _match(self, rule: Rule, form_data: Mapping[str, Any]) -> bool:
        if rule.condition_group is None:
            raise RuleEvaluationError("rule has no condition group")
        return self.evaluate_condition_group(rule.condition_group, form_data)

    def evaluate_rule(
        self, rule: Rule, form_data: Mapping[str, Any], context: Optional[ConditionalLogicContext] = None
    ) -> bool:
        try:
            return self._match(rule, form_data)
        except Exception:
            logger.exception("Error evaluating rule '%s' (%s)", rule.id, _describe(context))
            return False

    def evaluate_rules(
        self,
        rules: Iterable[Rule],
        form_data: Mapping[str, Any],
        context: Optional[ConditionalLogicContext] = None,
    ) -> ConditionalLogicResult:
        result = ConditionalLogicResult()
        for rule in sort_by_priority(rules):
            result.evaluated_rules.append(rule.id)
            try:
                matched = self._match(rule, form_data)
            except Exception as exc:
                logger.error("Error evaluating rule '%s' (%s): %s", rule.id, _describe(context), exc)
                result.errors.append(f"Error evaluating rule '{rule.id}': {exc}")
                continue
            if not matched:
                logger.debug("Rule '%s' evaluated to false (%s)", rule.id, _describe(context))
                continue
            logger.debug("Rule '%s' evaluated to true (%s)", rule.id, _describe(context))
            for element in rule.affected_elements:
                result.actions.append(ConditionalLogicAction(element=element, rule_id=rule.id, priority=rule.priority))
        result.actions.sort(key=lambda a: a.priority)
        return result

    def references_field(self, group: Optional[ConditionGroup], field_id: str, depth: int = 1) -> bool:
        if group is None or depth > self.max_depth:
            return False
        for node in group.conditions:
            if isinstance(node, ConditionGroup):
                if self.references_field(node, field_id, depth + 1):
                    return True
            elif node.trigger_field == field_id:
                return True
        return False

    def get_triggered_rules(self, rules: Iterable[Rule], field_id: str) -> List[Rule]:
        return [r for r in rules if r.enabled and self.references_field(r.condition_group, field_id)]

    def validate_rule(self, rule: Rule) -> RuleValidationResult:
        result = RuleValidationResult(rule_id=rule.id)
        if not rule.id:
            result.errors.append("Rule ID is required")
        if rule.condition_group is None:
            result.errors.append("Condition group is required")
        else:
            self._validate_group(rule.condition_group, result, 1)
        if not rule.affected_elements:
            result.errors.append("At least one affected element is required")
        for element in rule.affected_elements:
            self._validate_element(element, result)
        result.is_valid = not result.errors
        return result

    def _validate_group(self, group: ConditionGroup, result: RuleValidationResult, depth: int) -> None:
        if depth > self.max_depth:
            result.errors.append(f"Condition nesting exceeds the maximum depth of {self.max_depth}")
            return
        if not group.conditions:
            result.warnings.append("Condition group has no conditions")
            return
        if (group.logical_operator or "AND").upper() not in ("AND", "OR", "NOT"):
            result.warnings.append(f"Unknown logical operator '{group.logical_operator}', AND will be used")
        for node in group.conditions:
            if isinstance(node, ConditionGroup):
                self._validate_group(node, result, depth + 1)
            else:
                self._validate_condition(node, result)

    @staticmethod
    def _validate_condition(condition: Condition, result: RuleValidationResult) -> None:
        if not condition.trigger_field:
            result.errors.append("Condition trigger field is required")
        if not condition.operator:
            result.errors.append("Condition operator is required")
        elif not is_supported_operator(condition.operator):
            result.warnings.append(f"Operator '{condition.operator}' is not supported and will evaluate to false")

    @staticmethod
    def _validate_element(element: AffectedElement, result: RuleValidationResult) -> None:
        if not element.element_id:
            result.errors.append("Affected element ID is required")
        if not element.element_type:
            result.errors.append("Affected element type is required")
        elif element.element_type.lower() not in ELEMENT_TYPES:
            result.warnings.append(f"Element type '{element.element_type}' is not handled")
        if not element.action:
            result.errors.append("Affected element action is required")
        elif element.action.lower() not in _ACTION_NAMES:
            result.warnings.append(f"Action '{element.action}' is not supported and will be ignored")
