# resolver.py
from __future__ import annotations

from typing import Any, List, Sequence, Tuple

from .errors import InputFunctionError, UnboundWildcardError
from .model import (
    InputFunction,
    InputSpec,
    Job,
    NamedPaths,
    ParamFunction,
    Params,
    ParamSpec,
    RulePattern,
    StaticList,
    StaticTemplate,
    StaticValue,
    WildcardBinding,
)
from .wildcards import Template


def _format(rule: RulePattern, template: str, binding: WildcardBinding) -> str:
    try:
        return Template.parse(template).format(binding)
    except UnboundWildcardError as e:
        e.rule = rule.name
        raise


def _call_input_function(rule: RulePattern, name: str, spec: InputFunction, binding: WildcardBinding) -> List[str]:
    def fail(message: str) -> InputFunctionError:
        return InputFunctionError(rule=rule.name, name=name, wildcards=dict(binding), message=message)

    try:
        result = spec.func(binding)
    except Exception as e:
        raise fail(f"{type(e).__name__}: {e}") from e

    if isinstance(result, str):
        paths = [result]
    elif isinstance(result, (list, tuple)):
        bad = [p for p in result if not isinstance(p, str)]
        if bad:
            raise fail(f"returned non-string entries {bad!r}")
        paths = list(result)
    else:
        raise fail(f"returned {type(result).__name__}, expected a path or a list of paths")

    if not paths and not spec.allow_empty:
        raise fail("returned no paths")

    # functions may hand back templates; fill them from the same binding
    return [_format(rule, p, binding) for p in paths]


def resolve_input(rule: RulePattern, name: str, spec: InputSpec, binding: WildcardBinding) -> List[str]:
    if isinstance(spec, StaticTemplate):
        return [_format(rule, spec.template, binding)]
    if isinstance(spec, StaticList):
        return [_format(rule, t, binding) for t in spec.templates]
    if isinstance(spec, InputFunction):
        return _call_input_function(rule, name, spec, binding)
    raise TypeError(f"rule '{rule.name}': unsupported input spec {spec!r} for '{name}'")


def resolve_param(rule: RulePattern, name: str, spec: ParamSpec, binding: WildcardBinding) -> Any:
    if isinstance(spec, StaticValue):
        if isinstance(spec.value, str):
            return _format(rule, spec.value, binding)
        return spec.value
    if isinstance(spec, ParamFunction):
        try:
            return spec.func(binding)
        except Exception as e:
            raise InputFunctionError(
                rule=rule.name,
                name=name,
                wildcards=dict(binding),
                message=f"{type(e).__name__}: {e}",
            ) from e
    raise TypeError(f"rule '{rule.name}': unsupported param spec {spec!r} for '{name}'")


def resolve(rule: RulePattern, binding: WildcardBinding) -> Job:
    """
    Turn a rule plus one wildcard binding into a concrete Job.

    Inputs are resolved in declaration order; the paths an input function
    returns keep their order and are never deduplicated.
    """
    if not isinstance(binding, WildcardBinding):
        binding = WildcardBinding(binding)

    outputs: List[Tuple[str, Sequence[str]]] = [
        (name, [_format(rule, tpl, binding)]) for name, tpl in rule.outputs.items()
    ]
    inputs: List[Tuple[str, Sequence[str]]] = [
        (name, resolve_input(rule, name, spec, binding)) for name, spec in rule.inputs.items()
    ]
    params = Params({name: resolve_param(rule, name, spec, binding) for name, spec in rule.params.items()})

    return Job(
        rule=rule.name,
        wildcards=binding,
        outputs=NamedPaths(outputs),
        inputs=NamedPaths(inputs),
        params=params,
        action=rule.action,
        message=rule.message,
    )
