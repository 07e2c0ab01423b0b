# wildcards.py
from __future__ import annotations

import itertools
import os
import re
from collections import namedtuple
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Callable, Dict, Iterable, List, Mapping, NamedTuple, Optional, Sequence, Tuple, Union

from .errors import AmbiguousRuleError, UnboundWildcardError
from .model import RulePattern, WildcardBinding

# ---------------------------------------------------------------------
# Template syntax
# ---------------------------------------------------------------------
#   {name}          wildcard, matches ".+"
#   {name,REGEX}    wildcard constrained to REGEX
#   {{ and }}       literal braces
# ---------------------------------------------------------------------

_TOKEN = re.compile(
    r"""
    (?P<lbrace>\{\{)
    | (?P<rbrace>\}\})
    | \{\s*(?P<name>[A-Za-z_]\w*)\s*
        (?:,\s*(?P<constraint>(?:[^{}]|\{\d+(?:,\d*)?\})+))?
      \}
    """,
    re.VERBOSE,
)

DEFAULT_CONSTRAINT = ".+"


class Wildcard(NamedTuple):
    name: str
    constraint: Optional[str]
    raw: str


Token = Union[str, Wildcard]


@dataclass(frozen=True)
class Template:
    """A parsed path template: literal anchors interleaved with wildcard placeholders."""

    text: str
    tokens: Tuple[Token, ...]

    @staticmethod
    @lru_cache(maxsize=4096)
    def parse(text: str) -> "Template":
        tokens: List[Token] = []
        literal: List[str] = []
        pos = 0
        for m in _TOKEN.finditer(text):
            literal.append(text[pos:m.start()])
            pos = m.end()
            if m.group("lbrace"):
                literal.append("{")
            elif m.group("rbrace"):
                literal.append("}")
            elif m.group("name").startswith("_"):
                raise ValueError(f"template '{text}': wildcard names cannot start with '_' ({m.group(0)})")
            else:
                if literal and "".join(literal):
                    tokens.append("".join(literal))
                literal = []
                tokens.append(Wildcard(m.group("name"), m.group("constraint"), m.group(0)))
        literal.append(text[pos:])
        if "".join(literal):
            tokens.append("".join(literal))
        return Template(text=text, tokens=tuple(tokens))

    # ------------------------------------------------------------------
    # Shape
    # ------------------------------------------------------------------
    @property
    def wildcards(self) -> List[Wildcard]:
        return [t for t in self.tokens if isinstance(t, Wildcard)]

    @property
    def wildcard_names(self) -> Tuple[str, ...]:
        seen: Dict[str, None] = {}
        for w in self.wildcards:
            seen.setdefault(w.name, None)
        return tuple(seen)

    @property
    def literals(self) -> List[str]:
        return [t for t in self.tokens if isinstance(t, str)]

    @property
    def has_wildcards(self) -> bool:
        return any(isinstance(t, Wildcard) for t in self.tokens)

    @property
    def prefix(self) -> str:
        return self.tokens[0] if self.tokens and isinstance(self.tokens[0], str) else ""

    @property
    def suffix(self) -> str:
        if len(self.tokens) > 1 and isinstance(self.tokens[-1], str):
            return self.tokens[-1]
        return ""

    @property
    def regex(self) -> "re.Pattern[str]":
        return _compile(self)

    def could_match(self, path: str) -> bool:
        """Cheap structural test: literal anchors present in order, room left for every wildcard."""
        if not self.has_wildcards:
            return path == "".join(self.literals)

        prefix, suffix = self.prefix, self.suffix
        if len(path) < len(prefix) + len(suffix):
            return False
        if not (path.startswith(prefix) and path.endswith(suffix)):
            return False

        # unconstrained wildcards capture at least one character
        minimum = sum(len(s) for s in self.literals)
        minimum += sum(1 for w in self.wildcards if w.constraint is None)
        if len(path) < minimum:
            return False

        start = 1 if prefix else 0
        stop = len(self.tokens) - 1 if suffix else len(self.tokens)
        pos, end = len(prefix), len(path) - len(suffix)
        for tok in self.tokens[start:stop]:
            if not isinstance(tok, str):
                continue
            idx = path.find(tok, pos, end)
            if idx < 0:
                return False
            pos = idx + len(tok)
        return True

    # ------------------------------------------------------------------
    # Match / format
    # ------------------------------------------------------------------
    def match(self, path: str) -> Optional[WildcardBinding]:
        """
        Bind the wildcards, or None when `path` does not fit.

        Unconstrained wildcards are greedy, so earlier wildcards take as much
        as they can: "{a}_{b}.txt" binds "x_y_z.txt" as a="x_y", b="z".
        Use a constraint ("{a,[^_]+}") to split differently.
        """
        if not self.could_match(path):
            return None
        m = self.regex.fullmatch(path)
        if m is None:
            return None
        return WildcardBinding(m.groupdict())

    def format(self, values: Mapping[str, Any], *, allow_missing: bool = False) -> str:
        out: List[str] = []
        for tok in self.tokens:
            if isinstance(tok, str):
                out.append(tok.replace("{", "{{").replace("}", "}}") if allow_missing else tok)
            elif tok.name in values:
                out.append(str(values[tok.name]))
            elif allow_missing:
                out.append(tok.raw)
            else:
                raise UnboundWildcardError(
                    template=self.text,
                    wildcard=tok.name,
                    available=list(values),
                )
        return "".join(out)

    def __str__(self) -> str:
        return self.text


@lru_cache(maxsize=4096)
def _compile(template: Template) -> "re.Pattern[str]":
    parts: List[str] = []
    seen: set[str] = set()
    for tok in template.tokens:
        if isinstance(tok, str):
            parts.append(re.escape(tok))
        elif tok.name in seen:
            parts.append(f"(?P={tok.name})")
        else:
            seen.add(tok.name)
            parts.append(f"(?P<{tok.name}>{tok.constraint or DEFAULT_CONSTRAINT})")
    return re.compile("".join(parts))


# ---------------------------------------------------------------------
# Matching
# ---------------------------------------------------------------------

def match(pattern: Union[str, Template], path: str) -> Optional[WildcardBinding]:
    """Match one concrete path against one template. None means no match."""
    tpl = pattern if isinstance(pattern, Template) else Template.parse(pattern)
    return tpl.match(path)


def match_rule(rule: RulePattern, path: str) -> Optional[WildcardBinding]:
    """
    Bind `path` against every output template of `rule`.

    All templates that match must agree on the value of each shared wildcard,
    otherwise the rule does not match.
    """
    merged: Dict[str, str] = {}
    matched = False
    for tpl in rule.output_templates:
        binding = match(tpl, path)
        if binding is None:
            continue
        matched = True
        for name, value in binding.items():
            if merged.setdefault(name, value) != value:
                return None
    if not matched:
        return None
    return WildcardBinding(merged)


class Matcher:
    """Finds the single rule (and binding) able to produce a concrete path."""

    def __init__(self, registry):
        self.registry = registry

    def find(self, path: str) -> Optional[Tuple[RulePattern, WildcardBinding]]:
        found: List[Tuple[RulePattern, WildcardBinding]] = []
        for rule in self.registry.lookup_by_output(path):
            binding = match_rule(rule, path)
            if binding is not None:
                found.append((rule, binding))

        if len(found) > 1:
            raise AmbiguousRuleError(path=path, rules=[r.name for r, _ in found])
        return found[0] if found else None


# ---------------------------------------------------------------------
# Workflow helpers
# ---------------------------------------------------------------------

def expand(
    pattern: Union[str, Sequence[str]],
    *combinator: Callable[..., Iterable[Tuple[Any, ...]]],
    allow_missing: bool = False,
    **wildcards: Any,
) -> List[str]:
    """
    Format pattern(s) with every combination of the given wildcard values.

        expand("trimmed/{sample}_{end}.fq", sample=["a", "b"], end=[1, 2])
        -> ["trimmed/a_1.fq", "trimmed/a_2.fq", "trimmed/b_1.fq", "trimmed/b_2.fq"]

    Pass `zip` as the second argument to pair values up instead of taking
    the cartesian product.
    """
    if len(combinator) > 1:
        raise TypeError("expand() takes at most one combinator")
    combine = combinator[0] if combinator else itertools.product

    patterns = [pattern] if isinstance(pattern, str) else list(pattern)
    names = list(wildcards)
    values = [[v] if isinstance(v, (str, int, float)) else list(v) for v in wildcards.values()]

    out: List[str] = []
    for p in patterns:
        tpl = Template.parse(p)
        for combo in combine(*values):
            out.append(tpl.format(dict(zip(names, combo)), allow_missing=allow_missing))
    return out


def glob_wildcards(pattern: str, files: Optional[Iterable[str]] = None):
    """
    Collect wildcard values from existing paths matching `pattern`.

    Returns a namedtuple with one list per wildcard. Values come back in
    file system order, which is arbitrary; sort them if order matters.
    """
    pattern = os.path.normpath(pattern)
    tpl = Template.parse(pattern)
    Wildcards = namedtuple("Wildcards", tpl.wildcard_names)  # type: ignore[misc]
    results: Dict[str, List[str]] = {name: [] for name in tpl.wildcard_names}

    if files is None:
        root = os.path.dirname(tpl.prefix) or "."
        files = (
            os.path.normpath(os.path.join(dirpath, f))
            for dirpath, dirnames, filenames in os.walk(root, followlinks=True)
            for f in itertools.chain(filenames, dirnames)
        )

    for f in files:
        binding = tpl.match(os.path.normpath(f))
        if binding is None:
            continue
        for name, value in binding.items():
            results[name].append(value)

    return Wildcards(**results)
