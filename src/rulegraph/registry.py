# registry.py
from __future__ import annotations

from typing import Dict, Iterable, Iterator, List, Optional

from .errors import DuplicateOutputError, DuplicateRuleError, RuleDefinitionError, UnboundWildcardError
from .model import RulePattern, StaticList, StaticTemplate, StaticValue
from .wildcards import Template


def validate_rule(rule: RulePattern) -> None:
    """
    Check the rule on its own, before it joins a registry.

    - every output template carries the same set of wildcards
    - static input and string param templates only use output wildcards
    """
    if not rule.name or not rule.name.isidentifier():
        raise RuleDefinitionError(rule=rule.name, message="rule name must be a Python identifier")

    def _parse(template: str) -> Template:
        try:
            return Template.parse(template)
        except ValueError as e:
            raise RuleDefinitionError(rule=rule.name, message=str(e)) from e

    wildcard_sets = {tpl: set(_parse(tpl).wildcard_names) for tpl in rule.output_templates}
    names = set().union(*wildcard_sets.values()) if wildcard_sets else set()
    for tpl, found in wildcard_sets.items():
        if found != names:
            raise RuleDefinitionError(
                rule=rule.name,
                message=f"output '{tpl}' uses wildcards {sorted(found)}, other outputs use {sorted(names)}",
            )

    def _check(template: str) -> None:
        for wc in _parse(template).wildcard_names:
            if wc not in names:
                raise UnboundWildcardError(
                    template=template,
                    wildcard=wc,
                    available=sorted(names),
                    rule=rule.name,
                )

    for spec in rule.inputs.values():
        if isinstance(spec, StaticTemplate):
            _check(spec.template)
        elif isinstance(spec, StaticList):
            for tpl in spec.templates:
                _check(tpl)

    for spec in rule.params.values():
        if isinstance(spec, StaticValue) and isinstance(spec.value, str):
            _check(spec.value)


class RuleRegistry:
    """
    Declared rules, in registration order.

    Built once while a workflow loads and then handed to the matcher,
    resolver and DAG builder.
    """

    def __init__(self, rules: Optional[Iterable[RulePattern]] = None):
        self._rules: Dict[str, RulePattern] = {}
        self._output_owner: Dict[str, str] = {}
        for rule in rules or []:
            self.register(rule)

    def register(self, rule: RulePattern) -> RulePattern:
        validate_rule(rule)

        if rule.name in self._rules:
            raise DuplicateRuleError(rule=rule.name)

        for tpl in rule.output_templates:
            owner = self._output_owner.get(tpl)
            if owner is not None:
                raise DuplicateOutputError(template=tpl, rule=rule.name, existing_rule=owner)

        self._rules[rule.name] = rule
        for tpl in rule.output_templates:
            self._output_owner[tpl] = rule.name
        return rule

    def lookup_by_output(self, path: str) -> List[RulePattern]:
        """Every rule with an output template whose shape fits `path` (no bindings returned)."""
        out: List[RulePattern] = []
        for rule in self._rules.values():
            for tpl in rule.output_templates:
                t = Template.parse(tpl)
                if t.could_match(path) and t.regex.fullmatch(path):
                    out.append(rule)
                    break
        return out

    # ------------------------------------------------------------------
    def get(self, name: str) -> RulePattern:
        try:
            return self._rules[name]
        except KeyError:
            raise KeyError(f"unknown rule '{name}' (known: {self.names()})") from None

    def names(self) -> List[str]:
        return list(self._rules)

    @property
    def default_target(self) -> Optional[RulePattern]:
        return next(iter(self._rules.values()), None)

    def __contains__(self, name: object) -> bool:
        return name in self._rules

    def __iter__(self) -> Iterator[RulePattern]:
        return iter(self._rules.values())

    def __len__(self) -> int:
        return len(self._rules)
