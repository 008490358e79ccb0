import json
from datetime import datetime

from tracker.backup import backup_filename, export_excel, export_json, parse_backup, to_frames
from tracker.domain import AppData, Expense, Income, Segment
from tracker.transforms import clean_app_data


def sample():
    return AppData(
        incomes=(Income("i1", "Salary", 50000, "2024-01-01"),),
        expenses=(Expense("e1", "Lunch", 500, "2024-01-02T12:00:00.250Z", "s1"),),
        segments=(Segment("s1", "Food", 10000, "#38BDF8"),),
    )


def test_export_then_import_gives_back_the_same_data():
    text = export_json(sample())
    parsed = parse_backup(text)
    assert parsed.is_right()
    assert clean_app_data(parsed.get_or_else(None)) == sample()


def test_export_uses_wire_field_names():
    raw = json.loads(export_json(sample()))
    assert raw["segments"][0]["allocatedAmount"] == 10000
    assert raw["expenses"][0]["segmentId"] == "s1"
    assert raw["expenses"][0]["dateTime"] == "2024-01-02T12:00:00.250Z"


def test_invalid_json_is_refused():
    assert parse_backup("{oops").get_error()["error"] == "invalid_json"


def test_missing_collection_is_refused():
    refusal = parse_backup(json.dumps({"incomes": [], "segments": []}))
    assert refusal.get_error()["field"] == "expenses"
    assert parse_backup("[]").is_left()


def test_backup_filename():
    assert backup_filename(datetime(2024, 3, 5, 8, 9, 10)) == "expense-tracker-backup-2024-03-05T08-09-10.json"


def test_frames_have_one_row_per_record():
    frames = to_frames(sample())
    assert set(frames) == {"Incomes", "Expenses", "Segments"}
    assert frames["Expenses"].loc[0, "Segment"] == "Food"
    assert frames["Segments"].loc[0, "Remaining"] == 9500
    assert to_frames(AppData.empty())["Incomes"].empty


def test_excel_export_is_a_workbook():
    assert export_excel(sample())[:2] == b"PK"
