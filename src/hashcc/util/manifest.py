"""Run report helpers."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Mapping


def write_report(payload: Mapping[str, Any], *, dest: Path) -> Path:
    """Write a JSON run report.

    When ``dest`` is an existing directory a timestamped ``run_*.json`` file is
    created inside it; otherwise ``dest`` is used as the file name.
    """

    timestamp = datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")
    if dest.is_dir():
        dest = dest / f"run_{timestamp}.json"
    dest.parent.mkdir(parents=True, exist_ok=True)
    document = {"generated_at": timestamp, **payload}
    dest.write_text(json.dumps(document, indent=2, default=str), encoding="utf-8")
    return dest


__all__ = ["write_report"]
