import json
from datetime import datetime
from io import BytesIO
from typing import Any, Dict, Optional

import pandas as pd

from tracker.domain import AppData
from tracker.functional import Either, Left, validate_backup
from tracker.reports import spent_by_segment


def export_json(data: AppData) -> str:
    return json.dumps(data.to_dict(), indent=2, ensure_ascii=False)


def backup_filename(now: Optional[datetime] = None) -> str:
    stamp = (now or datetime.now()).strftime("%Y-%m-%dT%H-%M-%S")
    return f"expense-tracker-backup-{stamp}.json"


def parse_backup(text: str) -> Either[dict, Dict[str, Any]]:
    """Decode a backup file; the result can be handed to ``DataStore.replace_all_data``."""
    try:
        raw = json.loads(text)
    except json.JSONDecodeError as exc:
        return Left({"error": "invalid_json", "message": f"Backup is not valid JSON: {exc.msg}"})
    return validate_backup(raw)


def to_frames(data: AppData) -> Dict[str, pd.DataFrame]:
    names = {s.id: s.name for s in data.segments}
    spent = spent_by_segment(data.expenses, data.segments)
    incomes = pd.DataFrame(
        [{"Title": i.title, "Amount": i.amount, "Date": i.date} for i in data.incomes],
        columns=["Title", "Amount", "Date"],
    )
    expenses = pd.DataFrame(
        [
            {
                "Title": e.title,
                "Amount": e.amount,
                # Excel cannot store timezone-aware datetimes
                "Date/Time (UTC)": e.timestamp.replace(tzinfo=None),
                "Segment": names.get(e.segment_id, "N/A"),
            }
            for e in data.expenses
        ],
        columns=["Title", "Amount", "Date/Time (UTC)", "Segment"],
    )
    segments = pd.DataFrame(
        [
            {
                "Name": s.name,
                "Allocated": s.allocated_amount,
                "Spent": spent[s.id],
                "Remaining": s.allocated_amount - spent[s.id],
            }
            for s in data.segments
        ],
        columns=["Name", "Allocated", "Spent", "Remaining"],
    )
    return {"Incomes": incomes, "Expenses": expenses, "Segments": segments}


def export_excel(data: AppData) -> bytes:
    buffer = BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        for sheet, frame in to_frames(data).items():
            frame.to_excel(writer, sheet_name=sheet, index=False)
    return buffer.getvalue()
