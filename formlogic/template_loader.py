from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict

from pydantic import ValidationError

from .errors import TemplateLoadError
from .schema import FormTemplate


def _read_json(path: str | Path) -> Any:
    p = Path(path)
    if not p.exists():
        raise TemplateLoadError(f"file not found: {path}")
    try:
        with p.open("r", encoding="utf-8") as f:
            return json.load(f)
    except ValueError as exc:
        raise TemplateLoadError(f"invalid JSON in {path}: {exc}") from exc


def parse_template(data: Any) -> FormTemplate:
    if isinstance(data, dict) and "template" in data and "templateId" not in data:
        data = data["template"]
    try:
        return FormTemplate.model_validate(data)
    except ValidationError as exc:
        raise TemplateLoadError(f"invalid form template: {exc}") from exc


def load_template(path: str | Path) -> FormTemplate:
    return parse_template(_read_json(path))


def load_form_data(path: str | Path) -> Dict[str, Any]:
    data = _read_json(path)
    if not isinstance(data, dict):
        raise TemplateLoadError(f"form data must be a JSON object: {path}")
    return data
