# orderdesk/jobs/delivery_tracking_sync.py
from __future__ import annotations

from orderdesk.jobs.delivery_tracking_sync_runner import main, run_cli, run_once

__all__ = [
    "run_once",
    "main",
    "run_cli",
]


if __name__ == "__main__":
    run_cli()
