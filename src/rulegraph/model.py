# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, Mapping, Optional, Sequence, Tuple, Union


# ---------------------------------------------------------------------
# Read-only mappings with attribute access
# ---------------------------------------------------------------------

class _FrozenMap(Mapping[str, Any]):
    """Immutable mapping that also exposes its keys as attributes (`wildcards.sample`)."""

    __slots__ = ("_data",)

    def __init__(self, data: Optional[Mapping[str, Any]] = None, **kwargs: Any):
        merged = dict(data or {})
        merged.update(kwargs)
        object.__setattr__(self, "_data", merged)

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __getattr__(self, name: str) -> Any:
        if name == "_data":
            raise AttributeError(name)
        try:
            return self._data[name]
        except KeyError:
            raise AttributeError(f"{type(self).__name__} has no entry {name!r}") from None

    def __setattr__(self, name: str, value: Any) -> None:
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __repr__(self) -> str:
        inner = ", ".join(f"{k}={v!r}" for k, v in self._data.items())
        return f"{type(self).__name__}({inner})"


class WildcardBinding(_FrozenMap):
    """Wildcard name -> value for exactly one job."""

    __slots__ = ()

    def __hash__(self) -> int:
        return hash(tuple(sorted(self._data.items())))

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Mapping):
            return dict(self._data) == dict(other)
        return NotImplemented


class Params(_FrozenMap):
    """Resolved parameter values of a job."""

    __slots__ = ()

    def __eq__(self, other: object) -> bool:
        if isinstance(other, Mapping):
            return dict(self._data) == dict(other)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]


class NamedPaths(tuple):
    """
    Ordered concrete paths that remember which named entry each came from.

    Behaves as a plain tuple of paths. `str()` joins the paths with spaces so
    the object can be dropped straight into a shell command, and each named
    entry is reachable as an attribute (`job.inputs.reads`).
    """

    def __new__(cls, groups: Iterable[Tuple[str, Sequence[str]]] = ()):
        groups = [(name, tuple(paths)) for name, paths in groups]
        flat = [p for _, paths in groups for p in paths]
        obj = super().__new__(cls, flat)
        obj._groups = dict(groups)
        return obj

    @property
    def groups(self) -> Dict[str, Tuple[str, ...]]:
        return dict(self._groups)

    def get(self, name: str, default: Any = None) -> Any:
        if name not in self._groups:
            return default
        paths = self._groups[name]
        if len(paths) == 1:
            return paths[0]
        return NamedPaths([(name, paths)])

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            raise AttributeError(name)
        if name not in self._groups:
            raise AttributeError(f"no entry named {name!r} (known: {sorted(self._groups)})")
        return self.get(name)

    def __str__(self) -> str:
        return " ".join(self)


# ---------------------------------------------------------------------
# Input / param specifications (tagged variants)
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class StaticTemplate:
    """A single path template, formatted with the job's wildcards."""
    template: str


@dataclass(frozen=True)
class StaticList:
    """An ordered list of path templates."""
    templates: Tuple[str, ...]


@dataclass(frozen=True)
class InputFunction:
    """
    Deferred input: called with the job's WildcardBinding once it is known.

    Must return a path or an ordered sequence of paths. An empty result is an
    error unless `allow_empty` is set.
    """
    func: Callable[[WildcardBinding], Union[str, Sequence[str]]]
    allow_empty: bool = False

    @property
    def name(self) -> str:
        return getattr(self.func, "__name__", repr(self.func))


InputSpec = Union[StaticTemplate, StaticList, InputFunction]


@dataclass(frozen=True)
class StaticValue:
    value: Any


@dataclass(frozen=True)
class ParamFunction:
    func: Callable[[WildcardBinding], Any]


ParamSpec = Union[StaticValue, ParamFunction]

# A shell command template, a Python callable taking the Job, or nothing.
Action = Union[str, Callable[["Job"], None], None]


# ---------------------------------------------------------------------
# Rules and jobs
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class RulePattern:
    """
    A declared rule: output templates, input specs, params and an action.

    `outputs` and `inputs` keep their declaration order; unnamed entries are
    stored under generated names (`_0`, `_1`, ...).
    """
    name: str
    outputs: Dict[str, str] = field(default_factory=dict)
    inputs: Dict[str, InputSpec] = field(default_factory=dict)
    params: Dict[str, ParamSpec] = field(default_factory=dict)
    action: Action = None
    message: Optional[str] = None

    @property
    def output_templates(self) -> list[str]:
        return list(self.outputs.values())

    @property
    def wildcard_names(self) -> frozenset[str]:
        from .wildcards import Template

        names: set[str] = set()
        for tpl in self.outputs.values():
            names.update(Template.parse(tpl).wildcard_names)
        return frozenset(names)

    @property
    def has_wildcards(self) -> bool:
        return bool(self.wildcard_names)

    def __hash__(self) -> int:
        return hash(self.name)


@dataclass(frozen=True, eq=False)
class Job:
    """One concrete instantiation of a rule for one wildcard binding."""
    rule: str
    wildcards: WildcardBinding
    outputs: NamedPaths
    inputs: NamedPaths
    params: Params = field(default_factory=Params)
    action: Action = None
    message: Optional[str] = None

    @property
    def key(self) -> str:
        # output-less rules (e.g. an `all` target) are keyed by rule name
        return self.outputs[0] if self.outputs else self.rule

    @property
    def label(self) -> str:
        if not self.wildcards:
            return self.rule
        wc = ", ".join(f"{k}={v}" for k, v in self.wildcards.items())
        return f"{self.rule}[{wc}]"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Job):
            return NotImplemented
        return (
            self.rule == other.rule
            and self.wildcards == other.wildcards
            and tuple(self.outputs) == tuple(other.outputs)
            and tuple(self.inputs) == tuple(other.inputs)
        )

    def __hash__(self) -> int:
        return hash((self.rule, tuple(self.outputs)))
