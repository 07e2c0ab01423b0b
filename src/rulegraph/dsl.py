# dsl.py
from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from .model import (
    Action,
    InputFunction,
    InputSpec,
    ParamFunction,
    ParamSpec,
    RulePattern,
    StaticList,
    StaticTemplate,
    StaticValue,
)
from .wildcards import expand, glob_wildcards  # noqa: F401  re-exported for workflow files


# ---------------------------------------------------------------------
# Spec normalisation
# ---------------------------------------------------------------------

def as_input_spec(value: Any) -> InputSpec:
    """str -> StaticTemplate, list/tuple -> StaticList, callable -> InputFunction."""
    if isinstance(value, (StaticTemplate, StaticList, InputFunction)):
        return value
    if isinstance(value, str):
        return StaticTemplate(value)
    if isinstance(value, (list, tuple)):
        if not all(isinstance(v, str) for v in value):
            raise TypeError(f"input list entries must be strings, got {value!r}")
        return StaticList(tuple(value))
    if callable(value):
        return InputFunction(value)
    raise TypeError(f"unsupported input {value!r}: expected a path, a list of paths or a function")


def as_param_spec(value: Any) -> ParamSpec:
    if isinstance(value, (StaticValue, ParamFunction)):
        return value
    if callable(value):
        return ParamFunction(value)
    return StaticValue(value)


def _named(values: Union[None, str, Sequence[Any], Mapping[str, Any]]) -> Dict[str, Any]:
    """Positional entries get generated names `_0`, `_1`, ..."""
    if values is None:
        return {}
    if isinstance(values, Mapping):
        return dict(values)
    if isinstance(values, str) or callable(values):
        return {"_0": values}
    return {f"_{i}": v for i, v in enumerate(values)}


def _named_inputs(values: Union[None, str, Sequence[Any], Mapping[str, Any]]) -> Dict[str, InputSpec]:
    # a flat list of strings is kept as one ordered group so `{input}` stays in order
    if isinstance(values, (list, tuple)) and all(isinstance(v, str) for v in values):
        return {"_0": StaticList(tuple(values))} if values else {}
    return {name: as_input_spec(v) for name, v in _named(values).items()}


# ---------------------------------------------------------------------
# Functional rule helper
# ---------------------------------------------------------------------

def rule(
    name: str,
    *,
    output: Union[None, str, Sequence[str], Mapping[str, str]] = None,
    input: Union[None, str, Sequence[Any], Mapping[str, Any]] = None,
    params: Optional[Mapping[str, Any]] = None,
    shell: Optional[str] = None,
    run: Optional[Callable[..., None]] = None,
    message: Optional[str] = None,
) -> RulePattern:
    """
    Declare a rule.

        rule(
            "trim",
            output="trimmed/{sample}.fq",
            input="reads/{sample}.fq",
            params={"quality": 20},
            shell="cutadapt -q {params.quality} -o {output} {input}",
        )

    `input` entries may be functions of the wildcards; they are only called
    once a concrete target has bound the rule's wildcards.
    """
    if shell is not None and run is not None:
        raise ValueError(f"rule({name!r}) takes either shell= or run=, not both")

    outputs = _named(output)
    bad = [v for v in outputs.values() if not isinstance(v, str)]
    if bad:
        raise TypeError(f"rule({name!r}) outputs must be path templates, got {bad!r}")

    action: Action = shell if shell is not None else run
    return RulePattern(
        name=name,
        outputs=outputs,
        inputs=_named_inputs(input),
        params={k: as_param_spec(v) for k, v in (params or {}).items()},
        action=action,
        message=message,
    )


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class RuleBuilder:
    def __init__(self, name: str):
        self.name = name
        self._outputs: Dict[str, str] = {}
        self._inputs: Dict[str, InputSpec] = {}
        self._params: Dict[str, ParamSpec] = {}
        self._action: Action = None
        self._message: Optional[str] = None

    def outputs(self, *templates: str, **named: str):
        start = len(self._outputs)
        for i, tpl in enumerate(templates):
            self._outputs[f"_{start + i}"] = tpl
        self._outputs.update(named)
        return self

    def inputs(self, *templates: str, **named: Any):
        if templates:
            self._inputs[f"_{len(self._inputs)}"] = StaticList(tuple(templates))
        for key, value in named.items():
            self._inputs[key] = as_input_spec(value)
        return self

    def input_fn(self, name: str, func: Callable[..., Any], *, allow_empty: bool = False):
        self._inputs[name] = InputFunction(func, allow_empty=allow_empty)
        return self

    def with_params(self, **params: Any):
        self._params.update({k: as_param_spec(v) for k, v in params.items()})
        return self

    def shell(self, cmd: str):
        self._action = cmd
        return self

    def run(self, func: Callable[..., None]):
        self._action = func
        return self

    def with_message(self, message: str):
        self._message = message
        return self

    def build(self) -> RulePattern:
        return RulePattern(
            name=self.name,
            outputs=dict(self._outputs),
            inputs=dict(self._inputs),
            params=dict(self._params),
            action=self._action,
            message=self._message,
        )


def build(name: str) -> RuleBuilder:
    """Convenience: build('trim').outputs(...).inputs(...).shell(...).build()"""
    return RuleBuilder(name)


# ---------------------------------------------------------------------
# Workflow helper (single-file story)
# ---------------------------------------------------------------------

def wf(*rules: RulePattern) -> List[RulePattern]:
    """
    Workflow definition helper.

        from rulegraph import wf, rule

        def workflow():
            return wf(
                rule(...),
                rule(...),
            )

    Or use RULES directly:
        RULES = wf(rule(...), rule(...))

    The first rule is the default target.
    """
    return list(rules)
