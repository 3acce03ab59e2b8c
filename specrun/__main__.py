"""Entry point: python -m specrun [list] [--specs DIR]

Loads the description documents in DIR (default: $SPECRUN_SPECS or the
current directory) and prints the catalog status report.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys

from .report import render_report
from .server import SpecRun


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="specrun",
        description="Convert OpenAPI specifications into callable tools.",
    )
    parser.add_argument("command", nargs="?", default="list", choices=["list"])
    parser.add_argument(
        "--specs",
        default=os.environ.get("SPECRUN_SPECS") or os.getcwd(),
        help="Directory containing OpenAPI spec files",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=os.environ.get("SPECRUN_LOG_LEVEL", "WARNING").upper(),
        stream=sys.stderr,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = SpecRun(args.specs)
    app.load_specs()
    sys.stdout.write(render_report(app))
    return 0


if __name__ == "__main__":
    sys.exit(main())
