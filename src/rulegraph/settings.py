from __future__ import annotations
import os

DEFAULT_WORKFLOW = os.environ.get("RULEGRAPH_WORKFLOW", "rulegraph_workflow.py")
# left as text: click converts and range-checks it like a command-line value
DEFAULT_WORKERS = os.environ.get("RULEGRAPH_WORKERS", "1")
