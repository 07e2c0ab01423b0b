# dag.py
from __future__ import annotations

import os
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Set, Tuple

from .errors import CyclicDependencyError, NoRuleError
from .model import Job, RulePattern, WildcardBinding
from .registry import RuleRegistry
from .resolver import resolve
from .ui.console import get_console
from .wildcards import Matcher

# Deeper chains than this are treated as a rule feeding itself forever
# (e.g. output "{x}.txt" with input "{x}.txt.txt").
MAX_DEPTH = 200


# ---------------------------------------------------------------------
# Graph
# ---------------------------------------------------------------------

@dataclass
class Graph:
    """
    Resolved jobs plus the leaf paths no rule produces.

    `jobs` is keyed by Job.key and ordered so that every job comes after
    the jobs it depends on. `requested` holds the job keys / source paths
    of the original targets, in request order.
    """
    jobs: Dict[str, Job] = field(default_factory=dict)
    producers: Dict[str, str] = field(default_factory=dict)
    sources: List[str] = field(default_factory=list)
    requested: List[str] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.jobs)

    def __iter__(self) -> Iterator[Job]:
        return iter(self.jobs.values())

    def __contains__(self, path: object) -> bool:
        return path in self.producers or path in self.jobs

    def job_for(self, path: str) -> Optional[Job]:
        key = self.producers.get(path, path)
        return self.jobs.get(key)

    def dependencies(self, job: Job) -> List[Job]:
        """Upstream jobs of `job`, in input order, without repeats."""
        seen: Dict[str, Job] = {}
        for path in job.inputs:
            key = self.producers.get(path)
            if key is not None and key != job.key and key not in seen:
                seen[key] = self.jobs[key]
        return list(seen.values())

    def dependents(self, job: Job) -> List[Job]:
        return [j for j in self.jobs.values() if any(d.key == job.key for d in self.dependencies(j))]

    def edges(self) -> Dict[str, Set[str]]:
        """job key -> keys of the jobs it depends on."""
        return {key: {d.key for d in self.dependencies(job)} for key, job in self.jobs.items()}

    # ------------------------------------------------------------------
    # Ordering
    # ------------------------------------------------------------------
    def adjacency(self) -> Tuple[Dict[str, List[str]], Dict[str, int]]:
        adj: Dict[str, List[str]] = {k: [] for k in self.jobs}   # dep -> dependents
        indeg: Dict[str, int] = {k: 0 for k in self.jobs}
        for key, deps in self.edges().items():
            for dep in deps:
                adj[dep].append(key)
                indeg[key] += 1
        return adj, indeg

    def topological_order(self) -> Iterator[Job]:
        """Yield jobs so that each comes after everything it depends on."""
        adj, indeg = self.adjacency()
        q = deque(k for k in self.jobs if indeg[k] == 0)
        emitted = 0
        while q:
            key = q.popleft()
            emitted += 1
            yield self.jobs[key]
            for child in adj[key]:
                indeg[child] -= 1
                if indeg[child] == 0:
                    q.append(child)

        if emitted != len(self.jobs):
            stuck = [k for k, d in indeg.items() if d > 0]
            raise CyclicDependencyError(cycle=stuck)

    def levels(self) -> List[List[Job]]:
        """
        Group jobs into stages; every job in a stage only depends on
        earlier stages, so a stage can run in parallel.
        """
        adj, indeg = self.adjacency()
        q = deque(k for k in self.jobs if indeg[k] == 0)

        levels: List[List[Job]] = []
        processed = 0

        while q:
            level_size = len(q)
            level: List[Job] = []

            for _ in range(level_size):
                key = q.popleft()
                level.append(self.jobs[key])
                processed += 1

                for child in adj[key]:
                    indeg[child] -= 1
                    if indeg[child] == 0:
                        q.append(child)

            levels.append(level)

        if processed != len(self.jobs):
            raise CyclicDependencyError(cycle=[k for k, d in indeg.items() if d > 0])

        return levels

    # ------------------------------------------------------------------
    # Graphviz
    # ------------------------------------------------------------------
    def to_dot(self) -> str:
        ids = {key: i for i, key in enumerate(self.jobs)}
        lines = [
            "digraph rulegraph {",
            "    graph[bgcolor=white, margin=0];",
            "    node[shape=box, style=rounded, fontname=sans, fontsize=10, penwidth=2];",
            "    edge[penwidth=2, color=grey];",
        ]
        for key, job in self.jobs.items():
            label = job.rule + "".join(f"\\n{k}: {v}" for k, v in job.wildcards.items())
            label = label.replace('"', '\\"')
            lines.append(f'    {ids[key]}[label = "{label}"];')
        for key, job in self.jobs.items():
            for dep in self.dependencies(job):
                lines.append(f"    {ids[dep.key]} -> {ids[key]}")
        lines.append("}")
        return "\n".join(lines) + "\n"


# ---------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------

class DagBuilder:
    """
    Resolves requested targets into a Graph, depth-first.

    Every concrete output path maps to at most one Job. The memo behind that
    guarantee is shared by all worker threads and only touched under a lock.
    """

    def __init__(
        self,
        registry: RuleRegistry,
        *,
        exists: Callable[[str], bool] = os.path.exists,
        max_workers: int | None = 1,
    ):
        self.registry = registry
        self.matcher = Matcher(registry)
        self.exists = exists
        self.max_workers = max_workers
        self._lock = threading.Lock()
        self._memo: Dict[str, Job] = {}
        self._jobs: Dict[str, Job] = {}
        self._sources: Dict[str, None] = {}

    # ------------------------------------------------------------------
    def build(self, targets: Sequence[str]) -> Graph:
        targets = list(targets)
        with self._lock:
            self._memo, self._jobs, self._sources = {}, {}, {}

        sequential = self.max_workers is not None and self.max_workers <= 1
        if sequential or len(targets) <= 1:
            requested = [self._request(t) for t in targets]
        else:
            requested = self._request_parallel(targets)

        return self._to_graph(requested)

    def _request_parallel(self, targets: List[str]) -> List[str]:
        results: Dict[int, str] = {}
        errors: Dict[int, BaseException] = {}

        with ThreadPoolExecutor(max_workers=self.max_workers) as pool:
            futures = {pool.submit(self._request, t): i for i, t in enumerate(targets)}
            for future in as_completed(futures):
                idx = futures[future]
                try:
                    results[idx] = future.result()
                except Exception as e:
                    # siblings keep resolving; the build still fails below
                    errors[idx] = e

        if errors:
            raise errors[min(errors)]
        return [results[i] for i in range(len(targets))]

    def _request(self, target: str) -> str:
        """Resolve one requested target. Returns its job key or source path."""
        if target in self.registry:
            rule = self.registry.get(target)
            if not rule.has_wildcards:
                return self._request_rule(rule)

        found = self.matcher.find(target)
        if found is None:
            if self.exists(target):
                with self._lock:
                    self._sources.setdefault(target, None)
                return target
            raise NoRuleError(path=target)

        job = self._visit(target, [], found)
        if job is None:
            raise NoRuleError(path=target)
        return job.key

    def _request_rule(self, rule: RulePattern) -> str:
        if rule.outputs:
            job = self._visit(rule.output_templates[0], [], (rule, WildcardBinding()))
            if job is None:
                raise NoRuleError(path=rule.output_templates[0])
            return job.key

        # output-less aggregate rule: nothing can depend on it
        job = resolve(rule, WildcardBinding())
        for path in job.inputs:
            self._visit(path, [job.key])
        return self._store(job).key

    # ------------------------------------------------------------------
    def _visit(
        self,
        path: str,
        stack: List[str],
        found: Optional[Tuple[RulePattern, WildcardBinding]] = None,
    ) -> Optional[Job]:
        if path in stack:
            raise CyclicDependencyError(cycle=stack[stack.index(path):] + [path])
        if len(stack) >= MAX_DEPTH:
            raise CyclicDependencyError(cycle=stack[-3:] + [path, "..."])

        with self._lock:
            job = self._memo.get(path)
            if job is not None:
                return job
            if path in self._sources:
                return None

        if found is None:
            found = self.matcher.find(path)
        if found is None:
            # existence is checked when the graph runs, not here
            get_console().print_debug(f"source: {path}")
            with self._lock:
                self._sources.setdefault(path, None)
            return None

        rule, binding = found
        get_console().print_debug(f"{path} <- rule {rule.name} {dict(binding)}")
        job = resolve(rule, binding)

        chain = stack + [path]
        for inp in job.inputs:
            self._visit(inp, chain)

        return self._store(job)

    def _store(self, job: Job) -> Job:
        with self._lock:
            existing = self._jobs.get(job.key)
            if existing is not None:
                job = existing
            else:
                self._jobs[job.key] = job
            for out in job.outputs:
                self._memo.setdefault(out, job)
        return job

    # ------------------------------------------------------------------
    def _to_graph(self, requested: List[str]) -> Graph:
        with self._lock:
            memo = dict(self._memo)
            jobs = dict(self._jobs)
            sources = list(self._sources)

        producers = {path: job.key for path, job in memo.items()}

        # post-order walk from the requested targets: deterministic even when
        # the memo was filled by several threads
        ordered: Dict[str, Job] = {}

        def walk(key: str) -> None:
            if key in ordered or key not in jobs:
                return
            job = jobs[key]
            for path in job.inputs:
                dep = producers.get(path)
                if dep is not None and dep != key:
                    walk(dep)
            ordered[key] = job

        for key in requested:
            walk(key)
        for key in jobs:
            walk(key)

        used_sources = {p for job in ordered.values() for p in job.inputs if p not in producers}
        used_sources.update(k for k in requested if k not in jobs)
        return Graph(
            jobs=ordered,
            producers=producers,
            sources=[s for s in sources if s in used_sources],
            requested=requested,
        )


def build_graph(
    registry: RuleRegistry,
    targets: Sequence[str],
    *,
    exists: Callable[[str], bool] = os.path.exists,
    max_workers: int | None = 1,
) -> Graph:
    return DagBuilder(registry, exists=exists, max_workers=max_workers).build(targets)
