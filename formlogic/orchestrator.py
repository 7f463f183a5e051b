"""
Applies the rule engine's actions to a form template.

Each call builds a fresh `_StateBuilder`, seeds it with the baseline
visibility/required/enabled maps, applies the triggered actions in priority
order and hands back a frozen `FormConditionalState`. Nothing is shared
between calls, so one orchestrator can serve concurrent requests.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple

from .config import EngineSettings, get_settings
from .engine import RuleEngine
from .schema import (
    AffectedElement,
    ConditionalLogicAction,
    ConditionalLogicContext,
    ConditionalLogicMessage,
    ConditionalLogicResult,
    FormConditionalState,
    FormTemplate,
    RuleValidationResult,
    ValidationRule,
)
from .values import to_text

logger = logging.getLogger(__name__)

# actions that can only take an element away; a target referenced through
# these alone starts out visible
_SUBTRACTIVE_ACTIONS = {"hide", "skip"}


@dataclass
class _StateBuilder:
    field_visibility: Dict[str, bool] = field(default_factory=dict)
    page_visibility: Dict[str, bool] = field(default_factory=dict)
    field_enabled: Dict[str, bool] = field(default_factory=dict)
    field_required: Dict[str, bool] = field(default_factory=dict)
    field_values: Dict[str, Any] = field(default_factory=dict)
    skipped_pages: Set[str] = field(default_factory=set)
    additional_validations: Dict[str, List[ValidationRule]] = field(default_factory=dict)
    messages: List[ConditionalLogicMessage] = field(default_factory=list)
    # (element kind, casefolded id) -> id as first declared
    aliases: Dict[Tuple[str, str], str] = field(default_factory=dict)

    def register(self, kind: str, element_id: str) -> str:
        return self.aliases.setdefault((kind, element_id.casefold()), element_id)

    def resolve(self, element: AffectedElement) -> AffectedElement:
        known = self.aliases.get((element.element_type.lower(), element.element_id.casefold()))
        if known is None or known == element.element_id:
            return element
        return element.model_copy(update={"element_id": known})

    def freeze(self, result: Optional[ConditionalLogicResult]) -> FormConditionalState:
        return FormConditionalState(
            field_visibility=dict(self.field_visibility),
            page_visibility=dict(self.page_visibility),
            field_enabled=dict(self.field_enabled),
            field_required=dict(self.field_required),
            field_values=dict(self.field_values),
            skipped_pages=frozenset(self.skipped_pages),
            additional_validations={k: list(v) for k, v in self.additional_validations.items()},
            messages=list(self.messages),
            evaluation_result=result,
        )


def _is_field(element: AffectedElement) -> bool:
    return element.element_type.lower() == "field"


def _is_page(element: AffectedElement) -> bool:
    return element.element_type.lower() == "page"


def _show(element: AffectedElement, state: _StateBuilder, rule_id: str) -> None:
    if _is_field(element):
        state.field_visibility[element.element_id] = True
    elif _is_page(element):
        state.page_visibility[element.element_id] = True


def _hide(element: AffectedElement, state: _StateBuilder, rule_id: str) -> None:
    if _is_field(element):
        state.field_visibility[element.element_id] = False
    elif _is_page(element):
        state.page_visibility[element.element_id] = False


def _skip(element: AffectedElement, state: _StateBuilder, rule_id: str) -> None:
    if _is_page(element):
        state.skipped_pages.add(element.element_id)


def _field_flag(target: str, flag: bool) -> Callable[[AffectedElement, _StateBuilder, str], None]:
    def apply(element: AffectedElement, state: _StateBuilder, rule_id: str) -> None:
        if _is_field(element):
            getattr(state, target)[element.element_id] = flag

    return apply


def _set_value(element: AffectedElement, state: _StateBuilder, rule_id: str) -> None:
    if _is_field(element) and "value" in element.action_config:
        state.field_values[element.element_id] = element.action_config["value"]


def _clear_value(element: AffectedElement, state: _StateBuilder, rule_id: str) -> None:
    if _is_field(element):
        state.field_values[element.element_id] = ""


def _add_validation(element: AffectedElement, state: _StateBuilder, rule_id: str) -> None:
    config = element.action_config
    if not _is_field(element) or "validationType" not in config:
        return
    rule = ValidationRule(
        type=to_text(config["validationType"]),
        rule=config.get("rule", ""),
        message=to_text(config.get("message", "")),
    )
    state.additional_validations.setdefault(element.element_id, []).append(rule)


def _remove_validation(element: AffectedElement, state: _StateBuilder, rule_id: str) -> None:
    config = element.action_config
    if not _is_field(element) or "validationType" not in config:
        return
    existing = state.additional_validations.get(element.element_id)
    if existing is None:
        return
    target = to_text(config["validationType"]).casefold()
    existing[:] = [v for v in existing if v.type.casefold() != target]


def _show_message(element: AffectedElement, state: _StateBuilder, rule_id: str) -> None:
    config = element.action_config
    if "message" not in config:
        return
    state.messages.append(
        ConditionalLogicMessage(
            text=to_text(config["message"]),
            type=to_text(config.get("messageType")) or "info",
            target_element=element.element_id,
            rule_id=rule_id,
        )
    )


_ACTION_HANDLERS: Dict[str, Callable[[AffectedElement, _StateBuilder, str], None]] = {
    "show": _show,
    "hide": _hide,
    "skip": _skip,
    "require": _field_flag("field_required", True),
    "makeoptional": _field_flag("field_required", False),
    "enable": _field_flag("field_enabled", True),
    "disable": _field_flag("field_enabled", False),
    "setvalue": _set_value,
    "clearvalue": _clear_value,
    "addvalidation": _add_validation,
    "removevalidation": _remove_validation,
    "showmessage": _show_message,
}


class StateOrchestrator:
    def __init__(self, engine: Optional[RuleEngine] = None, settings: Optional[EngineSettings] = None):
        self.settings = settings or get_settings()
        self.engine = engine or RuleEngine(self.settings)

    def apply_conditional_logic(
        self,
        template: FormTemplate,
        form_data: Mapping[str, Any],
        context: Optional[ConditionalLogicContext] = None,
    ) -> FormConditionalState:
        state = _StateBuilder()
        self._initialize_defaults(template, state)
        rules = template.rules
        if not rules:
            return state.freeze(ConditionalLogicResult())

        result = self.engine.evaluate_rules(rules, form_data, context)
        for action in result.actions:
            self._apply_action(action, state)
        logger.debug(
            "Applied conditional logic for template '%s': %d rules evaluated, %d actions",
            template.template_id,
            len(result.evaluated_rules),
            len(result.actions),
        )
        return state.freeze(result)

    def _initialize_defaults(self, template: FormTemplate, state: _StateBuilder) -> None:
        hidden_pages: Set[str] = set()
        hidden_fields: Set[str] = set()
        referenced_pages: Set[str] = set()
        referenced_fields: Set[str] = set()
        pages = template.all_pages()
        fields = template.all_fields()
        for page in pages:
            state.register("page", page.page_id)
        for form_field in fields:
            state.register("field", form_field.field_id)

        for rule in template.rules:
            if not rule.enabled:
                continue
            for element in rule.affected_elements:
                additive = element.action.lower() not in _SUBTRACTIVE_ACTIONS
                if _is_page(element):
                    page_id = state.register("page", element.element_id)
                    referenced_pages.add(page_id)
                    if additive:
                        hidden_pages.add(page_id)
                elif _is_field(element):
                    field_id = state.register("field", element.element_id)
                    referenced_fields.add(field_id)
                    if additive:
                        hidden_fields.add(field_id)

        for page in pages:
            state.page_visibility[page.page_id] = page.page_id not in hidden_pages
        for form_field in fields:
            state.field_visibility[form_field.field_id] = form_field.field_id not in hidden_fields
            state.field_enabled[form_field.field_id] = True
            state.field_required[form_field.field_id] = bool(form_field.required)

        for page_id in referenced_pages:
            state.page_visibility.setdefault(page_id, page_id not in hidden_pages)
        for field_id in referenced_fields:
            state.field_visibility.setdefault(field_id, field_id not in hidden_fields)

    def _apply_action(self, action: ConditionalLogicAction, state: _StateBuilder) -> None:
        element = state.resolve(action.element)
        handler = _ACTION_HANDLERS.get(element.action.lower())
        if handler is None:
            logger.warning(
                "Unknown action '%s' for element '%s' from rule '%s'", element.action, element.element_id, action.rule_id
            )
            return
        try:
            handler(element, state, action.rule_id)
        except Exception:
            logger.exception(
                "Error applying action '%s' for element '%s' from rule '%s'",
                element.action,
                element.element_id,
                action.rule_id,
            )

    def evaluate_field_change(
        self,
        template: FormTemplate,
        form_data: Mapping[str, Any],
        changed_field_id: str,
        context: Optional[ConditionalLogicContext] = None,
    ) -> ConditionalLogicResult:
        rules = template.rules
        if not rules:
            return ConditionalLogicResult()
        try:
            triggered = self.engine.get_triggered_rules(rules, changed_field_id)
            logger.debug("Field '%s' changed, %d rules triggered", changed_field_id, len(triggered))
            return self.engine.evaluate_rules(triggered, form_data, context)
        except Exception as exc:
            logger.exception("Error evaluating change of field '%s'", changed_field_id)
            return ConditionalLogicResult(errors=[f"Error evaluating field change: {exc}"])

    def get_element_visibility(
        self,
        template: FormTemplate,
        form_data: Mapping[str, Any],
        context: Optional[ConditionalLogicContext] = None,
    ) -> Dict[str, bool]:
        try:
            state = self.apply_conditional_logic(template, form_data, context)
        except Exception:
            logger.exception("Error getting element visibility for template '%s'", template.template_id)
            return {}
        visibility = dict(state.field_visibility)
        visibility.update(state.page_visibility)
        return visibility

    def get_field_required_state(
        self,
        template: FormTemplate,
        form_data: Mapping[str, Any],
        context: Optional[ConditionalLogicContext] = None,
    ) -> Dict[str, bool]:
        try:
            state = self.apply_conditional_logic(template, form_data, context)
        except Exception:
            logger.exception("Error getting field required state for template '%s'", template.template_id)
            return {}
        return dict(state.field_required)

    def validate_template_rules(self, template: FormTemplate) -> List[RuleValidationResult]:
        try:
            return [self.engine.validate_rule(rule) for rule in template.rules]
        except Exception:
            logger.exception("Error validating rules for template '%s'", template.template_id)
            return []

    @staticmethod
    def _page_passable(template: FormTemplate, state: FormConditionalState, page_id: str) -> bool:
        if state.is_page_skipped(page_id):
            return False
        fields = template.fields_for_page(page_id)
        if fields and all(state.field_visibility.get(f.field_id) is False for f in fields):
            return False
        return True

    def get_next_page(
        self,
        template: FormTemplate,
        form_data: Mapping[str, Any],
        current_page_id: str,
        context: Optional[ConditionalLogicContext] = None,
    ) -> Optional[str]:
        try:
            state = self.apply_conditional_logic(template, form_data, context)
        except Exception:
            logger.exception("Error getting next page after '%s'", current_page_id)
            return None
        page_ids = [p.page_id for p in template.all_pages()]
        if current_page_id not in page_ids:
            logger.debug("Page '%s' is not in template '%s'", current_page_id, template.template_id)
            return None
        for page_id in page_ids[page_ids.index(current_page_id) + 1:]:
            if self._page_passable(template, state, page_id):
                return page_id
        return None

    def get_visible_pages(
        self,
        template: FormTemplate,
        form_data: Mapping[str, Any],
        context: Optional[ConditionalLogicContext] = None,
    ) -> List[str]:
        try:
            state = self.apply_conditional_logic(template, form_data, context)
        except Exception:
            logger.exception("Error listing visible pages for template '%s'", template.template_id)
            return []
        return [p.page_id for p in template.all_pages() if self._page_passable(template, state, p.page_id)]

    def should_skip_page(
        self,
        template: FormTemplate,
        form_data: Mapping[str, Any],
        page_id: str,
        context: Optional[ConditionalLogicContext] = None,
    ) -> bool:
        try:
            state = self.apply_conditional_logic(template, form_data, context)
        except Exception:
            logger.exception("Error checking if page '%s' should be skipped", page_id)
            return False
        return state.is_page_skipped(page_id)
