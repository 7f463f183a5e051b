from __future__ import annotations

from typing import Annotated, Any, Dict, FrozenSet, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Discriminator, Field, JsonValue, Tag
from pydantic.alias_generators import to_camel


OPERATORS = (
    "equals",
    "notEquals",
    "in",
    "notIn",
    "contains",
    "startsWith",
    "endsWith",
    "greaterThan",
    "lessThan",
    "greaterThanOrEqual",
    "lessThanOrEqual",
    "between",
    "isEmpty",
    "isNotEmpty",
    "isTrue",
    "isFalse",
    "hasLength",
    "matchesPattern",
    "isValidEmail",
    "isValidPhone",
)
ACTIONS = (
    "show",
    "hide",
    "skip",
    "require",
    "makeOptional",
    "enable",
    "disable",
    "setValue",
    "clearValue",
    "addValidation",
    "removeValidation",
    "showMessage",
)
LOGICAL_OPERATORS = ("AND", "OR", "NOT")
ELEMENT_TYPES = ("field", "page")
DATA_TYPES = ("string", "number", "boolean", "date")

_TEMPLATE = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore", frozen=True)
_RESULT = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class Condition(BaseModel):
    trigger_field: str = ""
    operator: str = ""
    value: JsonValue = None
    data_type: str = "string"

    model_config = _TEMPLATE


class ConditionGroup(BaseModel):
    logical_operator: str = "AND"
    conditions: List["ConditionNode"] = Field(default_factory=list)

    model_config = _TEMPLATE


def _node_kind(node: Any) -> str:
    if isinstance(node, dict):
        return "group" if node.get("conditions") else "leaf"
    return "group" if isinstance(node, ConditionGroup) else "leaf"


ConditionNode = Annotated[
    Union[Annotated[ConditionGroup, Tag("group")], Annotated[Condition, Tag("leaf")]],
    Discriminator(_node_kind),
]

ConditionGroup.model_rebuild()


class AffectedElement(BaseModel):
    element_id: str = ""
    element_type: str = ""
    action: str = ""
    action_config: Dict[str, JsonValue] = Field(default_factory=dict)

    model_config = _TEMPLATE


class Rule(BaseModel):
    id: str = ""
    name: Optional[str] = None
    priority: int = 100
    enabled: bool = True
    condition_group: Optional[ConditionGroup] = None
    affected_elements: List[AffectedElement] = Field(default_factory=list)
    execute_on: List[str] = Field(default_factory=lambda: ["change", "load"])
    debounce: int = 300

    model_config = _TEMPLATE


class ValidationRule(BaseModel):
    type: str
    rule: JsonValue = ""
    message: str = ""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class FormField(BaseModel):
    field_id: str
    type: str = "text"
    label: Any = None
    required: Optional[bool] = None
    order: int = 0
    validations: List[ValidationRule] = Field(default_factory=list)

    model_config = _TEMPLATE


class Page(BaseModel):
    page_id: str
    slug: str = ""
    title: str = ""
    page_order: int = 0
    fields: List[FormField] = Field(default_factory=list)

    model_config = _TEMPLATE


class Task(BaseModel):
    task_id: str
    task_name: str = ""
    task_order: int = 0
    pages: List[Page] = Field(default_factory=list)

    model_config = _TEMPLATE


class TaskGroup(BaseModel):
    group_id: str
    group_name: str = ""
    group_order: int = 0
    tasks: List[Task] = Field(default_factory=list)

    model_config = _TEMPLATE


class FormTemplate(BaseModel):
    template_id: str
    template_name: str = ""
    description: str = ""
    task_groups: List[TaskGroup] = Field(default_factory=list)
    conditional_logic: Optional[List[Rule]] = None

    model_config = _TEMPLATE

    @property
    def rules(self) -> List[Rule]:
        return list(self.conditional_logic or [])

    def all_pages(self) -> List[Page]:
        return [page for group in self.task_groups for task in group.tasks for page in task.pages]

    def all_fields(self) -> List[FormField]:
        return [field for page in self.all_pages() for field in page.fields]

    def fields_for_page(self, page_id: str) -> List[FormField]:
        return [field for page in self.all_pages() if page.page_id == page_id for field in page.fields]


class ConditionalLogicContext(BaseModel):
    current_page_id: Optional[str] = None
    current_task_id: Optional[str] = None
    is_client_side: bool = False
    trigger: Optional[str] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = _RESULT


class ConditionalLogicAction(BaseModel):
    element: AffectedElement
    rule_id: str
    priority: int = 0

    model_config = _RESULT


class ConditionalLogicResult(BaseModel):
    evaluated_rules: List[str] = Field(default_factory=list)
    actions: List[ConditionalLogicAction] = Field(default_factory=list)
    errors: List[str] = Field(default_factory=list)

    model_config = _RESULT

    @property
    def is_success(self) -> bool:
        return not self.errors


class RuleValidationResult(BaseModel):
    rule_id: str = ""
    is_valid: bool = True
    errors: List[str] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)

    model_config = _RESULT


class ConditionalLogicMessage(BaseModel):
    text: str
    type: str = "info"
    target_element: Optional[str] = None
    rule_id: Optional[str] = None

    model_config = _RESULT


class FormConditionalState(BaseModel):
    field_visibility: Dict[str, bool] = Field(default_factory=dict)
    page_visibility: Dict[str, bool] = Field(default_factory=dict)
    field_enabled: Dict[str, bool] = Field(default_factory=dict)
    field_required: Dict[str, bool] = Field(default_factory=dict)
    field_values: Dict[str, JsonValue] = Field(default_factory=dict)
    skipped_pages: FrozenSet[str] = frozenset()
    additional_validations: Dict[str, List[ValidationRule]] = Field(default_factory=dict)
    messages: List[ConditionalLogicMessage] = Field(default_factory=list)
    evaluation_result: Optional[ConditionalLogicResult] = None

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def is_page_skipped(self, page_id: str) -> bool:
        return page_id in self.skipped_pages or self.page_visibility.get(page_id) is False
