"""Render the catalog status report.

Takes a loaded SpecRun and produces the text shown by ``python -m specrun list``.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import jinja2

from .batch import BATCH_TOOL_NAME
from .server import SpecRun

TEMPLATE_DIR = Path(__file__).parent / "templates"

# Tools listed per API before the rest are summarized
TOOL_PREVIEW_COUNT = 5


def build_report_context(app: SpecRun) -> dict[str, Any]:
    """Collect what the status template needs from a loaded app."""
    apis = []
    for spec in app.specs:
        apis.append({
            "name": spec.api_name,
            "file": Path(spec.file_path).name,
            "base_url": spec.tools[0].base_url if spec.tools else "N/A",
            "tool_count": len(spec.tools),
            "auth": app.auth_config.get(spec.api_name),
            "tools": spec.tools[:TOOL_PREVIEW_COUNT],
            "hidden_tools": max(len(spec.tools) - TOOL_PREVIEW_COUNT, 0),
        })

    return {
        "specs_dir": str(app.specs_dir),
        "apis": apis,
        "batch_tool": BATCH_TOOL_NAME,
        "auth_config": app.auth_config,
    }


def render_report(app: SpecRun) -> str:
    """Render the status template for a loaded app."""
    env = jinja2.Environment(
        loader=jinja2.FileSystemLoader(str(TEMPLATE_DIR)),
        keep_trailing_newline=True,
        trim_blocks=True,
        lstrip_blocks=True,
    )
    template = env.get_template("status.txt.j2")
    return template.render(**build_report_context(app))
