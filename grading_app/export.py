"""
export.py
---------
Serializes a project's grades to CSV. Every field is wrapped in double quotes
with embedded quotes doubled; rows are separated by a bare newline.
"""

import csv
import io
from datetime import datetime, timezone

CSV_HEADER = ["SERIAL", "BRAND", "MODEL", "CPU", "SSD", "MEMORY", "OBSERVATIONS", "TOUCHSCREEN", "TECHNICIAN", "DATE"]


def iso_timestamp(value):
    """UTC ISO-8601 with milliseconds, e.g. 2026-01-17T14:03:12.345Z. Naive values are local time."""
    if value is None:
        return ""
    if isinstance(value, str):
        value = datetime.fromisoformat(value)
    utc = value.astimezone(timezone.utc)
    return utc.strftime('%Y-%m-%dT%H:%M:%S.') + f"{utc.microsecond // 1000:03d}Z"


def grade_to_csv_row(grade):
    return [
        grade.get('serialNumber'),
        grade.get('brand'),
        grade.get('model'),
        grade.get('cpu'),
        grade.get('ssdGb'),
        grade.get('ramGb'),
        grade.get('observations'),
        grade.get('touchStatus'),
        grade.get('userName'),
        iso_timestamp(grade.get('createdAt')),
    ]


def grades_to_csv(grades):
    buf = io.StringIO()
    writer = csv.writer(buf, quoting=csv.QUOTE_ALL, lineterminator="\n")
    writer.writerow(CSV_HEADER)
    for grade in grades:
        writer.writerow(["" if v is None else v for v in grade_to_csv_row(grade)])
    # no newline after the last row
    return buf.getvalue()[:-1]


def export_filename(project):
    return f"project-{project['id']}.csv"
