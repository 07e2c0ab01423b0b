# runner.py
from __future__ import annotations

import os
import shutil
import subprocess
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from .dag import Graph
from .errors import ActionFailed, MissingInputError, MissingOutputError, MissingSourceError, RuleGraphError
from .model import Job
from .ui.console import get_console


TOOL_HINTS = {
    127: "Command not found. Is the tool installed and on PATH?",
    126: "Command found but not executable.",
}


# ----------------------------------------------------------------------
# Planning (what needs to run)
# ----------------------------------------------------------------------

def _mtime(path: Path) -> Optional[float]:
    try:
        return path.stat().st_mtime
    except FileNotFoundError:
        return None


def plan_jobs(graph: Graph, *, workdir: str | Path = ".", force: bool = False) -> Dict[str, Optional[str]]:
    """
    Decide for every job whether it has to run.

    Returns job key -> reason, or None when the job is up to date.
    """
    root = Path(workdir)
    plan: Dict[str, Optional[str]] = {}

    for job in graph.topological_order():
        upstream = [d.key for d in graph.dependencies(job) if plan.get(d.key)]

        if force:
            plan[job.key] = "forced"
        elif upstream:
            plan[job.key] = f"updated input from {', '.join(upstream)}"
        elif not job.outputs:
            # aggregate rules only do something when they have an action
            plan[job.key] = "no outputs" if job.action is not None else None
        else:
            out_times = [_mtime(root / p) for p in job.outputs]
            in_times = [_mtime(root / p) for p in job.inputs]
            if any(t is None for t in out_times):
                missing = [p for p, t in zip(job.outputs, out_times) if t is None]
                plan[job.key] = f"missing output {', '.join(missing)}"
            elif any(t is None for t in in_times):
                plan[job.key] = "missing input"
            elif in_times and max(in_times) > min(out_times):
                plan[job.key] = "input newer than output"
            else:
                plan[job.key] = None

    return plan


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

def format_fields(job: Job) -> Dict[str, object]:
    """Names available to shell actions and messages."""
    return {
        "input": job.inputs,
        "output": job.outputs,
        "params": job.params,
        "wildcards": job.wildcards,
        "rule": job.rule,
    }


def format_action(job: Job) -> str:
    """Fill a shell action template with the job's files, params and wildcards."""
    if not isinstance(job.action, str):
        raise TypeError(f"[{job.label}] action is not a shell command: {job.action!r}")
    return job.action.format(**format_fields(job))


def _remove_outputs(job: Job, root: Path) -> None:
    for out in job.outputs:
        p = root / out
        if p.is_dir() and not p.is_symlink():
            shutil.rmtree(p, ignore_errors=True)
        elif p.exists() or p.is_symlink():
            p.unlink()


def _check_inputs(job: Job, graph: Graph, root: Path) -> None:
    for path in job.inputs:
        if (root / path).exists():
            continue
        if path in graph.producers:
            raise MissingInputError(path=path, job=job.label)
        raise MissingSourceError(path=path, job=job.label)


def _run_shell(job: Job, root: Path) -> None:
    cmd = format_action(job)
    get_console().print_command(cmd)

    proc = subprocess.run(
        cmd,
        shell=True,
        cwd=str(root),
        env=os.environ.copy(),
        text=True,
        capture_output=True,   # so you can show output on failure
    )

    if proc.returncode != 0:
        raise ActionFailed(
            job=job.label,
            cmd=cmd,
            exit_code=proc.returncode,
            stdout=proc.stdout[-4000:],
            stderr=proc.stderr[-4000:],
        )


def _run_job(job: Job, graph: Graph, root: Path) -> Tuple[str, str]:
    """
    Returns (job_key, "ok").
    Raises on failures; partial outputs are removed first.
    """
    _check_inputs(job, graph, root)

    for out in job.outputs:
        (root / out).parent.mkdir(parents=True, exist_ok=True)

    if job.message:
        get_console().print_message(
            job.message.format(**format_fields(job))
        )

    try:
        if callable(job.action):
            job.action(job)
        elif job.action:
            _run_shell(job, root)

        missing = [o for o in job.outputs if not (root / o).exists()]
        if missing:
            raise MissingOutputError(job=job.label, paths=missing)
    except Exception:
        _remove_outputs(job, root)
        raise

    return job.key, "ok"


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def run_graph(
    graph: Graph,
    *,
    workdir: str | Path = ".",
    max_workers: int | None = None,
    force: bool = False,
    keep_going: bool = False,
) -> Dict[str, str]:
    """
    Execute the graph, dependencies first.

    Jobs are handed to a thread pool as soon as everything they depend on
    succeeded. Returns job key -> "ok" | "up-to-date" | "failed" | "skipped".
    """
    console = get_console()
    root = Path(workdir).resolve()
    plan = plan_jobs(graph, workdir=root, force=force)

    adj, indeg = graph.adjacency()
    ready: List[str] = [key for key, deg in indeg.items() if deg == 0]
    results: Dict[str, str] = {}
    failed = False

    if max_workers is None:
        c = os.cpu_count() or 2
        max_workers = max(1, c - 1)

    def unlock(key: str) -> None:
        for nxt in adj[key]:
            indeg[nxt] -= 1
            if indeg[nxt] == 0:
                ready.append(nxt)

    in_flight: Dict = {}

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        while ready or in_flight:
            # schedule all currently ready
            while ready and not (failed and not keep_going):
                key = ready.pop(0)
                job = graph.jobs[key]
                reason = plan[key]
                if reason is None:
                    results[key] = "up-to-date"
                    console.print_job_up_to_date(job.label)
                    unlock(key)
                    continue
                console.print_job_start(job, reason)
                fut = pool.submit(_run_job, job, graph, root)
                in_flight[fut] = key

            if not in_flight:
                break

            # wait for one completion, then loop to schedule newly-ready jobs
            fut = next(as_completed(list(in_flight.keys())))
            key = in_flight.pop(fut)
            label = graph.jobs[key].label

            try:
                _key, status = fut.result()
                results[key] = status
                console.print_success(label)
            except ActionFailed as e:
                results[key] = "failed"
                console.print_failure(label, e.stderr or str(e), exit_code=e.exit_code, hint=TOOL_HINTS.get(e.exit_code))
                failed = True
            except RuleGraphError as e:
                results[key] = "failed"
                console.print_failure(label, str(e))
                failed = True
            except Exception as e:
                results[key] = "failed"
                console.print_failure(label, f"{type(e).__name__}: {e}")
                failed = True

            # unlock dependents only on success
            if results[key] == "ok":
                unlock(key)

    for key in graph.jobs:
        results.setdefault(key, "skipped")
    return results
