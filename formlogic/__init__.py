from .conditions import ConditionEvaluator
from .config import EngineSettings, get_settings
from .engine import RuleEngine
from .errors import ConditionDepthError, FormLogicError, RuleEvaluationError, TemplateLoadError
from .orchestrator import StateOrchestrator
from .schema import (
    AffectedElement,
    Condition,
    ConditionalLogicContext,
    ConditionalLogicResult,
    ConditionGroup,
    FormConditionalState,
    FormTemplate,
    Rule,
    RuleValidationResult,
)
from .template_loader import load_form_data, load_template

__version__ = "0.1.0"

__all__ = [
    "AffectedElement",
    "Condition",
    "ConditionDepthError",
    "ConditionEvaluator",
    "ConditionGroup",
    "ConditionalLogicContext",
    "ConditionalLogicResult",
    "EngineSettings",
    "FormConditionalState",
    "FormLogicError",
    "FormTemplate",
    "Rule",
    "RuleEngine",
    "RuleEvaluationError",
    "RuleValidationResult",
    "StateOrchestrator",
    "TemplateLoadError",
    "get_settings",
    "load_form_data",
    "load_template",
]
