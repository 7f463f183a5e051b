from __future__ import annotations


class FormLogicError(Exception):
    pass


class ConditionDepthError(FormLogicError):
    def __init__(self, depth: int, limit: int):
        self.depth = depth
        self.limit = limit
        super().__init__(f"condition nesting depth {depth} exceeds limit {limit}")


class RuleEvaluationError(FormLogicError):
    pass


class TemplateLoadError(FormLogicError):
    pass
