import pytest
from pydantic import ValidationError

from formlogic import orchestrator
from formlogic.config import EngineSettings
from formlogic.orchestrator import StateOrchestrator
from formlogic.schema import ConditionalLogicContext, FormTemplate


ORCH = StateOrchestrator(settings=EngineSettings())


def _page(page_id: str, *fields) -> dict:
    return {"pageId": page_id, "slug": page_id.lower(), "title": page_id, "pageOrder": 1, "fields": list(fields)}


def _field(field_id: str, required=None) -> dict:
    f = {"fieldId": field_id, "type": "text", "order": 1}
    if required is not None:
        f["required"] = required
    return f


def _rule(rule_id, trigger, value, elements, priority=1, op="equals", enabled=True) -> dict:
    return {
        "id": rule_id,
        "priority": priority,
        "enabled": enabled,
        "conditionGroup": {
            "logicalOperator": "AND",
            "conditions": [{"triggerField": trigger, "operator": op, "value": value}],
        },
        "affectedElements": elements,
    }


def _el(element_id: str, action: str, element_type: str = "field", **config) -> dict:
    return {"elementId": element_id, "elementType": element_type, "action": action, "actionConfig": config}


def _template(rules=None, pages=None) -> FormTemplate:
    if pages is None:
        pages = [
            _page("Page1", _field("hasPet", required=True)),
            _page("Page2", _field("petName", required=True), _field("petAge")),
            _page("Page3", _field("email", required=False), _field("notes")),
        ]
    # split pages across two tasks to exercise flattening
    return FormTemplate.model_validate(
        {
            "templateId": "pets",
            "templateName": "Pets",
            "description": "",
            "taskGroups": [
                {
                    "groupId": "g1",
                    "groupName": "G1",
                    "groupOrder": 1,
                    "tasks": [
                        {"taskId": "t1", "taskName": "T1", "taskOrder": 1, "pages": pages[:1]},
                        {"taskId": "t2", "taskName": "T2", "taskOrder": 2, "pages": pages[1:]},
                    ],
                }
            ],
            "conditionalLogic": rules,
        }
    )


HIDE_PAGE2 = _rule("hide-page2", "hasPet", "no", [_el("Page2", "hide", "page")])


def test_hidden_page_is_passed_over_by_next_page():
    tpl = _template([HIDE_PAGE2])
    assert ORCH.get_next_page(tpl, {"hasPet": "no"}, "Page1") == "Page3"
    assert ORCH.get_next_page(tpl, {"hasPet": "yes"}, "Page1") == "Page2"


def test_next_page_at_end_or_unknown_page_is_none():
    tpl = _template([HIDE_PAGE2])
    assert ORCH.get_next_page(tpl, {}, "Page3") is None
    assert ORCH.get_next_page(tpl, {}, "Nowhere") is None


def test_baseline_without_rules():
    state = ORCH.apply_conditional_logic(_template(), {})
    assert state.page_visibility == {"Page1": True, "Page2": True, "Page3": True}
    assert all(state.field_visibility.values())
    assert all(state.field_enabled.values())
    assert state.field_required == {
        "hasPet": True,
        "petName": True,
        "petAge": False,
        "email": False,
        "notes": False,
    }
    assert state.skipped_pages == frozenset()
    assert state.evaluation_result.evaluated_rules == []


def test_shown_elements_start_hidden_until_a_rule_fires():
    rules = [_rule("show-name", "hasPet", "yes", [_el("petName", "show")])]
    tpl = _template(rules)
    hidden = ORCH.apply_conditional_logic(tpl, {"hasPet": "no"})
    assert hidden.field_visibility["petName"] is False
    assert hidden.field_visibility["petAge"] is True
    assert hidden.field_required["petName"] is True
    shown = ORCH.apply_conditional_logic(tpl, {"hasPet": "yes"})
    assert shown.field_visibility["petName"] is True


def test_elements_referenced_only_by_disabled_rules_keep_defaults():
    rules = [_rule("off", "hasPet", "yes", [_el("petName", "show")], enabled=False)]
    state = ORCH.apply_conditional_logic(_template(rules), {"hasPet": "no"})
    assert state.field_visibility["petName"] is True


def test_referenced_ids_missing_from_template_still_get_visibility():
    rules = [_rule("ghost", "hasPet", "no", [_el("ghostField", "show"), _el("GhostPage", "show", "page")])]
    state = ORCH.apply_conditional_logic(_template(rules), {"hasPet": "yes"})
    assert state.field_visibility["ghostField"] is False
    assert state.page_visibility["GhostPage"] is False


def test_apply_is_idempotent():
    rules = [
        HIDE_PAGE2,
        _rule("msg", "hasPet", "no", [_el("notes", "showMessage", message="No pets", messageType="warning")], 2),
        _rule("val", "hasPet", "no", [_el("notes", "addValidation", validationType="maxLength", rule="10")], 3),
    ]
    tpl = _template(rules)
    data = {"hasPet": "no"}
    assert ORCH.apply_conditional_logic(tpl, data) == ORCH.apply_conditional_logic(tpl, data)


def test_add_then_remove_validation():
    add = _el("notes", "addValidation", validationType="maxLength", rule="10", message="Too long")
    remove = _el("notes", "removeValidation", validationType="maxLength")
    only_add = ORCH.apply_conditional_logic(_template([_rule("add", "hasPet", "no", [add], 1)]), {"hasPet": "no"})
    assert len(only_add.additional_validations["notes"]) == 1
    validation = only_add.additional_validations["notes"][0]
    assert (validation.type, validation.rule, validation.message) == ("maxLength", "10", "Too long")

    both = _template([_rule("add", "hasPet", "no", [add], 1), _rule("remove", "hasPet", "no", [remove], 2)])
    state = ORCH.apply_conditional_logic(both, {"hasPet": "no"})
    assert state.additional_validations["notes"] == []


def test_add_validation_without_type_is_ignored():
    rules = [_rule("add", "hasPet", "no", [_el("notes", "addValidation", rule="10")])]
    state = ORCH.apply_conditional_logic(_template(rules), {"hasPet": "no"})
    assert "notes" not in state.additional_validations


def test_show_message_defaults_to_info():
    rules = [_rule("msg", "hasPet", "no", [_el("Page3", "showMessage", "page", message="Skipping pet details")])]
    state = ORCH.apply_conditional_logic(_template(rules), {"hasPet": "no"})
    assert len(state.messages) == 1
    msg = state.messages[0]
    assert (msg.text, msg.type, msg.target_element, msg.rule_id) == ("Skipping pet details", "info", "Page3", "msg")


def test_value_actions():
    rules = [
        _rule("set", "hasPet", "no", [_el("petName", "setValue", value="n/a")], 1),
        _rule("clear", "hasPet", "no", [_el("notes", "clearValue")], 2),
    ]
    state = ORCH.apply_conditional_logic(_template(rules), {"hasPet": "no"})
    assert state.field_values == {"petName": "n/a", "notes": ""}


def test_require_optional_enable_disable():
    rules = [
        _rule("r", "hasPet", "yes", [_el("petAge", "require"), _el("petName", "makeOptional")], 1),
        _rule("d", "hasPet", "yes", [_el("email", "disable")], 2),
        _rule("e", "hasPet", "yes", [_el("email", "enable")], 3),
        _rule("d2", "hasPet", "yes", [_el("notes", "disable")], 4),
    ]
    state = ORCH.apply_conditional_logic(_template(rules), {"hasPet": "yes"})
    assert state.field_required["petAge"] is True
    assert state.field_required["petName"] is False
    assert state.field_enabled["email"] is True
    assert state.field_enabled["notes"] is False
    assert state.field_required["hasPet"] is True


def test_later_priority_wins_on_conflict():
    rules = [
        _rule("late-hide", "hasPet", "yes", [_el("petName", "hide")], 10),
        _rule("early-show", "hasPet", "yes", [_el("petName", "show")], 1),
    ]
    state = ORCH.apply_conditional_logic(_template(rules), {"hasPet": "yes"})
    assert state.field_visibility["petName"] is False


def test_unknown_action_changes_nothing():
    rules = [_rule("odd", "hasPet", "no", [_el("Page2", "teleport", "page")])]
    tpl = _template(rules)
    state = ORCH.apply_conditional_logic(tpl, {"hasPet": "no"})
    assert state.evaluation_result.is_success
    assert len(state.evaluation_result.actions) == 1
    assert state.skipped_pages == frozenset()
    assert state.messages == []


def test_skip_action_applies_to_pages_only():
    rules = [_rule("skip", "hasPet", "no", [_el("Page2", "skip", "page"), _el("petName", "skip")])]
    tpl = _template(rules)
    state = ORCH.apply_conditional_logic(tpl, {"hasPet": "no"})
    assert state.skipped_pages == frozenset({"Page2"})
    assert ORCH.should_skip_page(tpl, {"hasPet": "no"}, "Page2")
    assert not ORCH.should_skip_page(tpl, {"hasPet": "yes"}, "Page2")
    assert ORCH.get_next_page(tpl, {"hasPet": "no"}, "Page1") == "Page3"


def test_should_skip_hidden_page():
    tpl = _template([HIDE_PAGE2])
    assert ORCH.should_skip_page(tpl, {"hasPet": "no"}, "Page2")
    assert not ORCH.should_skip_page(tpl, {"hasPet": "no"}, "Page3")


def test_page_with_every_field_hidden_is_passed_over():
    rules = [_rule("hide-fields", "hasPet", "no", [_el("petName", "hide"), _el("petAge", "hide")])]
    tpl = _template(rules)
    assert ORCH.get_next_page(tpl, {"hasPet": "no"}, "Page1") == "Page3"
    assert ORCH.get_next_page(tpl, {"hasPet": "yes"}, "Page1") == "Page2"
    assert ORCH.get_visible_pages(tpl, {"hasPet": "no"}) == ["Page1", "Page3"]


def test_page_with_some_fields_hidden_is_kept():
    rules = [_rule("hide-one", "hasPet", "no", [_el("petName", "hide")])]
    assert ORCH.get_next_page(_template(rules), {"hasPet": "no"}, "Page1") == "Page2"


def test_element_visibility_merges_fields_and_pages():
    visibility = ORCH.get_element_visibility(_template([HIDE_PAGE2]), {"hasPet": "no"})
    assert visibility["Page2"] is False
    assert visibility["Page1"] is True
    assert visibility["petName"] is True
    assert len(visibility) == 8


def test_field_required_state():
    rules = [_rule("req", "hasPet", "yes", [_el("notes", "require")])]
    required = ORCH.get_field_required_state(_template(rules), {"hasPet": "yes"})
    assert required["notes"] is True
    assert required["email"] is False


def test_field_change_only_runs_rules_reading_that_field():
    rules = [
        _rule("pet", "hasPet", "no", [_el("Page2", "hide", "page")]),
        _rule("mail", "email", "", [_el("notes", "require")], op="isNotEmpty"),
    ]
    tpl = _template(rules)
    context = ConditionalLogicContext(trigger="change", current_page_id="Page3")
    result = ORCH.evaluate_field_change(tpl, {"hasPet": "no", "email": "a@b.co"}, "email", context)
    assert result.evaluated_rules == ["mail"]
    assert [a.element.element_id for a in result.actions] == ["notes"]
    assert ORCH.evaluate_field_change(_template(), {}, "email").evaluated_rules == []


def test_validate_template_rules_returns_one_result_per_rule():
    bad = {"id": "bad", "conditionGroup": {"conditions": [{"operator": "equals"}]}, "affectedElements": []}
    results = ORCH.validate_template_rules(_template([HIDE_PAGE2, bad]))
    assert [r.rule_id for r in results] == ["hide-page2", "bad"]
    assert results[0].is_valid
    assert not results[1].is_valid
    assert ORCH.validate_template_rules(_template()) == []


def test_state_is_read_only():
    state = ORCH.apply_conditional_logic(_template([HIDE_PAGE2]), {"hasPet": "no"})
    with pytest.raises(ValidationError):
        state.page_visibility = {}


def test_rule_errors_surface_in_evaluation_result():
    broken = {"id": "broken", "affectedElements": [_el("Page2", "show", "page")]}
    state = ORCH.apply_conditional_logic(_template([broken, HIDE_PAGE2]), {"hasPet": "no"})
    assert len(state.evaluation_result.errors) == 1
    assert state.page_visibility["Page2"] is False


def test_failing_action_does_not_stop_later_actions(monkeypatch):
    def broken(element, state, rule_id):
        raise RuntimeError("handler failed")

    monkeypatch.setitem(orchestrator._ACTION_HANDLERS, "hide", broken)
    rules = [HIDE_PAGE2, _rule("req", "hasPet", "no", [_el("notes", "require")], priority=2)]
    state = ORCH.apply_conditional_logic(_template(rules), {"hasPet": "no"})
    assert state.page_visibility["Page2"] is True
    assert state.field_required["notes"] is True
    assert state.evaluation_result.evaluated_rules == ["hide-page2", "req"]


def test_page_both_hidden_and_shown_by_rules_starts_hidden():
    rules = [HIDE_PAGE2, _rule("show-page2", "hasPet", "yes", [_el("Page2", "show", "page")], priority=2)]
    tpl = _template(rules)
    assert ORCH.apply_conditional_logic(tpl, {"hasPet": "maybe"}).page_visibility["Page2"] is False
    assert ORCH.get_next_page(tpl, {"hasPet": "maybe"}, "Page1") == "Page3"
    assert ORCH.get_next_page(tpl, {"hasPet": "no"}, "Page1") == "Page3"
    assert ORCH.get_next_page(tpl, {"hasPet": "yes"}, "Page1") == "Page2"


def test_action_targets_resolve_to_template_ids_ignoring_case():
    rules = [
        _rule("show-page2", "hasPet", "yes", [_el("page2", "show", "page"), _el("PETNAME", "require")]),
    ]
    tpl = _template(rules)
    state = ORCH.apply_conditional_logic(tpl, {"hasPet": "yes"})
    assert state.page_visibility == {"Page1": True, "Page2": True, "Page3": True}
    assert "PETNAME" not in state.field_required
    assert ORCH.get_next_page(tpl, {"hasPet": "yes"}, "Page1") == "Page2"
    assert ORCH.get_next_page(tpl, {"hasPet": "no"}, "Page1") == "Page3"


def test_field_change_and_rule_validation_fail_safe(monkeypatch):
    orch = StateOrchestrator(settings=EngineSettings())

    def broken(*args, **kwargs):
        raise RuntimeError("engine failed")

    monkeypatch.setattr(orch.engine, "get_triggered_rules", broken)
    monkeypatch.setattr(orch.engine, "validate_rule", broken)
    tpl = _template([HIDE_PAGE2])
    result = orch.evaluate_field_change(tpl, {"hasPet": "no"}, "hasPet")
    assert result.evaluated_rules == []
    assert result.errors == ["Error evaluating field change: engine failed"]
    assert orch.validate_template_rules(tpl) == []
