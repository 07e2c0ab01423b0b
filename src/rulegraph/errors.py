# errors.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional


class RuleGraphError(Exception):
    """Base class for every error raised while loading, building or running a workflow."""


# ----------------------------------------------------------------------
# Rule definition / registration
# ----------------------------------------------------------------------

@dataclass
class RuleDefinitionError(RuleGraphError):
    rule: str
    message: str

    def __str__(self) -> str:
        return f"rule '{self.rule}': {self.message}"


@dataclass
class DuplicateOutputError(RuleGraphError):
    template: str
    rule: str
    existing_rule: str

    def __str__(self) -> str:
        return (
            f"rule '{self.rule}' declares output '{self.template}' "
            f"which is already declared by rule '{self.existing_rule}'"
        )


@dataclass
class DuplicateRuleError(RuleGraphError):
    rule: str

    def __str__(self) -> str:
        return f"rule '{self.rule}' is defined more than once"


# ----------------------------------------------------------------------
# Matching / resolution
# ----------------------------------------------------------------------

@dataclass
class AmbiguousRuleError(RuleGraphError):
    path: str
    rules: List[str]

    def __str__(self) -> str:
        return f"more than one rule can produce '{self.path}': {', '.join(self.rules)}"


@dataclass
class NoRuleError(RuleGraphError):
    path: str

    def __str__(self) -> str:
        return f"no rule produces '{self.path}' and it does not exist as a source file"


@dataclass
class UnboundWildcardError(RuleGraphError):
    template: str
    wildcard: str
    available: List[str] = field(default_factory=list)
    rule: Optional[str] = None

    def __str__(self) -> str:
        where = f"rule '{self.rule}': " if self.rule else ""
        return (
            f"{where}template '{self.template}' uses wildcard '{self.wildcard}' "
            f"which is not bound (known: {sorted(self.available)})"
        )


@dataclass
class InputFunctionError(RuleGraphError):
    rule: str
    name: str
    wildcards: Dict[str, str]
    message: str

    def __str__(self) -> str:
        return (
            f"rule '{self.rule}': function for '{self.name}' failed "
            f"with wildcards {self.wildcards}: {self.message}"
        )


@dataclass
class CyclicDependencyError(RuleGraphError):
    cycle: List[str]

    def __str__(self) -> str:
        return "cyclic dependency: " + " -> ".join(self.cycle)


# ----------------------------------------------------------------------
# Execution
# ----------------------------------------------------------------------

@dataclass
class MissingSourceError(RuleGraphError):
    path: str
    job: str

    def __str__(self) -> str:
        return f"[{self.job}] source file '{self.path}' does not exist and no rule produces it"


@dataclass
class MissingInputError(RuleGraphError):
    path: str
    job: str

    def __str__(self) -> str:
        return f"[{self.job}] input '{self.path}' was not produced by its upstream job"


@dataclass
class MissingOutputError(RuleGraphError):
    job: str
    paths: List[str]

    def __str__(self) -> str:
        return f"[{self.job}] action finished but outputs are missing: {', '.join(self.paths)}"


@dataclass
class ActionFailed(RuleGraphError):
    job: str
    cmd: str
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    def __str__(self) -> str:
        return f"[{self.job}] action failed (exit={self.exit_code}): {self.cmd}"


# ----------------------------------------------------------------------
# Workflow loading / configuration
# ----------------------------------------------------------------------

@dataclass
class WorkflowLoadError(RuleGraphError):
    path: str
    message: str

    def __str__(self) -> str:
        return f"cannot load workflow {self.path}: {self.message}"


@dataclass
class ConfigError(RuleGraphError):
    item: str
    message: str

    def __str__(self) -> str:
        return f"invalid config item {self.item!r}: {self.message}"
