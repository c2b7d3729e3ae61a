"""CSV/JSON reports for transfer outcomes."""

from __future__ import annotations

import csv
import json
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from .models import TransferOutcome

OUTCOME_FIELDS = ["file_name", "destination", "success", "error"]


def write_csv(path: Path, rows: List[Dict[str, Any]], header_order: Optional[List[str]] = None) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    keys = header_order or (list(rows[0].keys()) if rows else [])
    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=keys)
        if keys:
            writer.writeheader()
        writer.writerows(rows)


def write_json(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")


def summarize(outcomes: Sequence[TransferOutcome]) -> Dict[str, int]:
    ok = sum(1 for o in outcomes if o.success)
    return {"attempted": len(outcomes), "succeeded": ok, "failed": len(outcomes) - ok}


def write_report(out_dir: Path, outcomes: Sequence[TransferOutcome], extra: Optional[Dict[str, Any]] = None) -> Path:
    rows = [asdict(o) for o in outcomes]
    write_csv(out_dir / "outcomes.csv", rows, header_order=OUTCOME_FIELDS)
    write_csv(out_dir / "failed.csv", [r for r in rows if not r["success"]], header_order=OUTCOME_FIELDS)
    summary: Dict[str, Any] = dict(summarize(outcomes))
    summary.update(extra or {})
    write_json(out_dir / "summary.json", summary)
    return out_dir


__all__ = ["write_csv", "write_json", "summarize", "write_report"]
