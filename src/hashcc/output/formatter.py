"""Rendering of hash results as text, JSON, CSV or sumfile."""

from __future__ import annotations

import io
import json
from collections.abc import Sequence

import pandas as pd

from hashcc.config.models import OutputFormatName
from hashcc.core.models import HashResult

FORMATS: tuple[str, ...] = ("text", "json", "csv", "sumfile")


def render_sumfile(results: Sequence[HashResult]) -> str:
    """``<hex>  <path>`` per successful result; failures are left out."""
    return "".join(f"{r.digest.hex}  {r.logical_path}\n" for r in results if r.digest is not None)


def render_text(results: Sequence[HashResult]) -> str:
    lines = []
    for result in results:
        if result.digest is not None:
            lines.append(f"{result.digest.hex}  {result.logical_path}")
        else:
            lines.append(f"ERROR  {result.logical_path}: {result.error}")
    return "".join(f"{line}\n" for line in lines)


def render_json(results: Sequence[HashResult]) -> str:
    return json.dumps([result.to_dict() for result in results], indent=2) + "\n"


def render_csv(results: Sequence[HashResult]) -> str:
    """``path,hash`` with a header row; failures are left out."""
    frame = pd.DataFrame(
        [(r.logical_path, r.digest.hex) for r in results if r.digest is not None],
        columns=["path", "hash"],
    )
    buffer = io.StringIO()
    frame.to_csv(buffer, index=False, lineterminator="\n")
    return buffer.getvalue()


_RENDERERS = {
    "text": render_text,
    "json": render_json,
    "csv": render_csv,
    "sumfile": render_sumfile,
}


def render(results: Sequence[HashResult], fmt: OutputFormatName | str = "text") -> str:
    try:
        renderer = _RENDERERS[fmt]
    except KeyError as exc:
        raise ValueError(f"Unknown output format '{fmt}' (expected one of: {', '.join(FORMATS)}).") from exc
    return renderer(results)


__all__ = ["FORMATS", "render", "render_csv", "render_json", "render_sumfile", "render_text"]
