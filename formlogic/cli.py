from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

import typer

from .config import get_settings
from .errors import TemplateLoadError
from .orchestrator import StateOrchestrator
from .schema import ConditionalLogicContext
from .template_loader import load_form_data, load_template

app = typer.Typer(add_completion=False, no_args_is_help=True)


EXAMPLE_TEMPLATE: Dict[str, Any] = {
    "templateId": "pet-registration",
    "templateName": "Pet registration",
    "description": "Example form with one conditional page",
    "taskGroups": [
        {
            "groupId": "g1",
            "groupName": "About you",
            "groupOrder": 1,
            "tasks": [
                {
                    "taskId": "t1",
                    "taskName": "Household",
                    "taskOrder": 1,
                    "pages": [
                        {
                            "pageId": "Page1",
                            "slug": "pets",
                            "title": "Do you have a pet?",
                            "pageOrder": 1,
                            "fields": [{"fieldId": "hasPet", "type": "radios", "required": True, "order": 1}],
                        },
                        {
                            "pageId": "Page2",
                            "slug": "pet-details",
                            "title": "About your pet",
                            "pageOrder": 2,
                            "fields": [{"fieldId": "petName", "type": "text", "required": True, "order": 1}],
                        },
                        {
                            "pageId": "Page3",
                            "slug": "contact",
                            "title": "Contact details",
                            "pageOrder": 3,
                            "fields": [{"fieldId": "email", "type": "email", "required": False, "order": 1}],
                        },
                    ],
                }
            ],
        }
    ],
    "conditionalLogic": [
        {
            "id": "hide-pet-details",
            "priority": 1,
            "enabled": True,
            "conditionGroup": {
                "logicalOperator": "AND",
                "conditions": [{"triggerField": "hasPet", "operator": "equals", "value": "no"}],
            },
            "affectedElements": [{"elementId": "Page2", "elementType": "page", "action": "hide"}],
        }
    ],
}

EXAMPLE_DATA: Dict[str, Any] = {"hasPet": "no", "email": "someone@example.com"}


def _load(template: str, data: Optional[str]):
    try:
        tpl = load_template(template)
        form_data = load_form_data(data) if data else {}
    except TemplateLoadError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(code=1)
    return tpl, form_data


@app.callback()
def main(log_level: Optional[str] = typer.Option(None, "--log-level", help="Logging level, default from settings")):
    level = (log_level or get_settings().log_level).upper()
    logging.basicConfig(level=getattr(logging, level, logging.WARNING), format="%(levelname)s %(name)s: %(message)s")


@app.command("init")
def cli_init(
    out: str = typer.Option("template.example.json", "--out"),
    data_out: str = typer.Option("form-data.example.json", "--data-out"),
):
    Path(out).write_text(json.dumps(EXAMPLE_TEMPLATE, indent=2), encoding="utf-8")
    Path(data_out).write_text(json.dumps(EXAMPLE_DATA, indent=2), encoding="utf-8")
    typer.echo(out)
    typer.echo(data_out)


@app.command("evaluate")
def cli_evaluate(
    template: str = typer.Option(..., "--template", help="Path to form template JSON"),
    data: Optional[str] = typer.Option(None, "--data", help="Path to form data JSON"),
    page: Optional[str] = typer.Option(None, "--page", help="Current page id, for diagnostics"),
    out: Optional[str] = typer.Option(None, "--out", help="Optional path for state JSON output"),
):
    """Apply the template's rules to the form data and print the resulting state."""
    tpl, form_data = _load(template, data)
    context = ConditionalLogicContext(current_page_id=page, trigger="load")
    orchestrator = StateOrchestrator()
    state = orchestrator.apply_conditional_logic(tpl, form_data, context)
    rec = {
        "state": state.model_dump(mode="json", by_alias=True),
        "visiblePages": orchestrator.get_visible_pages(tpl, form_data, context),
    }
    if out:
        Path(out).write_text(json.dumps(rec, indent=2), encoding="utf-8")
        typer.echo(out)
    else:
        typer.echo(json.dumps(rec))


@app.command("next-page")
def cli_next_page(
    template: str = typer.Option(..., "--template"),
    data: Optional[str] = typer.Option(None, "--data"),
    current: str = typer.Option(..., "--current", help="Id of the page being left"),
):
    tpl, form_data = _load(template, data)
    context = ConditionalLogicContext(current_page_id=current, trigger="change")
    next_page = StateOrchestrator().get_next_page(tpl, form_data, current, context)
    typer.echo(json.dumps({"currentPageId": current, "nextPageId": next_page}))


@app.command("field-change")
def cli_field_change(
    template: str = typer.Option(..., "--template"),
    data: Optional[str] = typer.Option(None, "--data"),
    field: str = typer.Option(..., "--field", help="Id of the field that changed"),
):
    """Re-evaluate only the rules that read the changed field."""
    tpl, form_data = _load(template, data)
    context = ConditionalLogicContext(trigger="change")
    result = StateOrchestrator().evaluate_field_change(tpl, form_data, field, context)
    typer.echo(json.dumps(result.model_dump(mode="json", by_alias=True)))


@app.command("validate-rules")
def cli_validate_rules(template: str = typer.Option(..., "--template")):
    """Run structural checks over every rule in the template."""
    tpl, _ = _load(template, None)
    results = StateOrchestrator().validate_template_rules(tpl)
    for res in results:
        status = "ok" if res.is_valid else "invalid"
        typer.echo(f"{res.rule_id or '<no id>'}: {status}")
        for err in res.errors:
            typer.echo(f"  error: {err}")
        for warn in res.warnings:
            typer.echo(f"  warning: {warn}")
    if not all(res.is_valid for res in results):
        raise typer.Exit(code=2)


@app.command("version")
def cli_version():
    from importlib.metadata import PackageNotFoundError, version as _pkg_version

    try:
        typer.echo(_pkg_version("formlogic"))
    except PackageNotFoundError:
        from . import __version__
        typer.echo(__version__)


if __name__ == "__main__":
    app()
