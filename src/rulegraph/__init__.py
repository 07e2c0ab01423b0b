from .dsl import rule, wf, RuleBuilder, build, expand, glob_wildcards
from .dag import DagBuilder, Graph, build_graph
from .registry import RuleRegistry
from .resolver import resolve
from .runner import run_graph
from .model import RulePattern, Job, WildcardBinding, InputFunction
from .wildcards import match

__all__ = [
    "rule", "wf", "RuleBuilder", "build", "expand", "glob_wildcards",
    "DagBuilder", "Graph", "build_graph", "RuleRegistry", "resolve", "run_graph",
    "RulePattern", "Job", "WildcardBinding", "InputFunction", "match",
]
