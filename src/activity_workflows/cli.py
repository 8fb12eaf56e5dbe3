"""Module entry point: `python -m activity_workflows.cli`.

The CLI is implemented in `activity_workflows.engine.main`.
"""

from __future__ import annotations

from activity_workflows.engine.main import main

__all__ = ["main"]


if __name__ == "__main__":
    raise SystemExit(main())
