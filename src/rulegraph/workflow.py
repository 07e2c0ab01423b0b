# workflow.py
from __future__ import annotations

import inspect
import json
import runpy
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from .errors import ConfigError, RuleGraphError, WorkflowLoadError
from .model import RulePattern
from .registry import RuleRegistry
from .settings import DEFAULT_WORKFLOW


# ----------------------------------------------------------------------
# Workflow discovery
# ----------------------------------------------------------------------

def find_workflow_files(directory: str | Path = ".") -> List[Path]:
    """
    Find all workflow files in `directory`.

    Returns the default workflow file (if present) followed by any other
    *_workflow.py files, sorted.
    """
    current_dir = Path(directory)
    workflow_files = []

    default_workflow = current_dir / DEFAULT_WORKFLOW
    if default_workflow.exists():
        workflow_files.append(default_workflow)

    for path in current_dir.glob("*_workflow.py"):
        if path != default_workflow:
            workflow_files.append(path)

    return sorted(workflow_files)


# ----------------------------------------------------------------------
# Config
# ----------------------------------------------------------------------

def parse_config_items(items: Iterable[str]) -> Dict[str, Any]:
    """
    Turn ["threads=4", "samples=[\"a\",\"b\"]", "ref=genome.fa"] into a dict.

    Values are decoded as JSON where possible and kept as plain strings otherwise.
    """
    config: Dict[str, Any] = {}
    for item in items:
        key, sep, raw = item.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ConfigError(item=item, message="expected KEY=VALUE")
        try:
            config[key] = json.loads(raw)
        except json.JSONDecodeError:
            config[key] = raw
    return config


# ----------------------------------------------------------------------
# Workflow loading (local file)
# ----------------------------------------------------------------------

def load_workflow(path: str | Path, config: Optional[Dict[str, Any]] = None) -> RuleRegistry:
    """
    Load a workflow from a python file path.

    The file sees a global `config` dict and must define either:
      - workflow() -> List[RulePattern]
      - RULES = [RulePattern, ...]

    Returns:
      RuleRegistry with the rules registered in declaration order
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise WorkflowLoadError(path=str(wf_path), message="file not found")
    if wf_path.suffix != ".py":
        raise WorkflowLoadError(path=str(wf_path), message=f"workflow must be a .py file, got {wf_path.name}")

    module_name = f"rulegraph_workflow_{wf_path.stem}"
    globals_dict = runpy.run_path(
        str(wf_path),
        init_globals={"config": dict(config or {})},
        run_name=module_name,
    )

    rules = None
    if "workflow" in globals_dict and callable(globals_dict["workflow"]):
        workflow_fn = globals_dict["workflow"]
        required = [
            p.name
            for p in inspect.signature(workflow_fn).parameters.values()
            if p.default is p.empty and p.kind in (p.POSITIONAL_ONLY, p.POSITIONAL_OR_KEYWORD, p.KEYWORD_ONLY)
        ]
        if required:
            raise WorkflowLoadError(
                path=str(wf_path),
                message=f"workflow() must take no arguments, it requires {required}; "
                        "build the rule list with the `wf` helper",
            )
        try:
            rules = workflow_fn()
        except RuleGraphError:
            raise
        except Exception as e:
            raise WorkflowLoadError(path=str(wf_path), message=f"workflow() raised {type(e).__name__}: {e}") from e
    elif "RULES" in globals_dict:
        rules = globals_dict["RULES"]

    if not isinstance(rules, list) or not all(isinstance(r, RulePattern) for r in rules):
        raise WorkflowLoadError(
            path=str(wf_path),
            message="workflow must return/define a list of rules: "
                    "define workflow() -> List[RulePattern] or RULES = [...]",
        )

    return RuleRegistry(rules)
