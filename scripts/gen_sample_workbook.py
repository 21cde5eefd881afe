#!/usr/bin/env python3
"""Sample job-upload workbook generator.

Writes an .xlsx in the upload template layout (header on row 1, one job per
row) with a configurable share of in-file duplicates, so the upload CLI and
the backend parser can be exercised without hand-made spreadsheets.
"""
from __future__ import annotations

import argparse
import sys
from datetime import date, timedelta
from pathlib import Path

import numpy as np
import pandas as pd

TEMPLATE_COLUMNS = [
    "Customer",
    "Customer Reference No",
    "Department/Person In Charge/Sub-Customer",
    "Service",
    "Vehicle",
    "Driver",
    "Contractor",
    "Vehicle Type",
    "Pickup Date",
    "Pickup Time",
    "Pickup Location",
    "Drop-off Location",
    "Passenger Name",
    "Passenger Mobile",
    "Remarks",
]

DEFAULT_CUSTOMERS = ["Acme Logistics", "Harbour Hotels", "City Clinic"]
DEFAULT_SERVICES = ["Airport Transfer", "Hourly Charter", "Point To Point"]


def generate_jobs(
    rows: int,
    duplicates: int = 0,
    customers: list[str] | None = None,
    services: list[str] | None = None,
    seed: int = 42,
) -> pd.DataFrame:
    """Build ``rows`` job rows; the last ``duplicates`` rows repeat earlier keys.

    A repeated row shares (Customer, Service, Pickup Date) with an earlier row,
    which is what the backend reports as "Duplicate in file".
    """
    if duplicates >= rows:
        raise ValueError("duplicates must be smaller than rows")
    rng = np.random.default_rng(seed)
    customers = customers or DEFAULT_CUSTOMERS
    services = services or DEFAULT_SERVICES
    start = date.today() + timedelta(days=1)

    unique = rows - duplicates
    records = []
    for i in range(unique):
        records.append(
            {
                "Customer": customers[i % len(customers)],
                "Customer Reference No": f"REF{i + 1:05d}",
                "Department/Person In Charge/Sub-Customer": "",
                "Service": str(rng.choice(services)),
                "Vehicle": "",
                "Driver": "",
                "Contractor": "",
                "Vehicle Type": "",
                # distinct day per unique row keeps the composite key unique
                "Pickup Date": (start + timedelta(days=i)).strftime("%Y-%m-%d"),
                "Pickup Time": f"{int(rng.integers(6, 22)):02d}:{int(rng.choice([0, 15, 30, 45])):02d}",
                "Pickup Location": f"Pickup Point {i + 1}",
                "Drop-off Location": f"Drop-off Point {i + 1}",
                "Passenger Name": f"Passenger {i + 1}",
                "Passenger Mobile": f"+659{int(rng.integers(1_000_000, 9_999_999))}",
                "Remarks": "",
            }
        )
    for j in range(duplicates):
        source = dict(records[int(rng.integers(0, unique))])
        source["Customer Reference No"] = f"DUP{j + 1:05d}"
        source["Remarks"] = "repeats an earlier row"
        records.append(source)
    return pd.DataFrame.from_records(records, columns=TEMPLATE_COLUMNS)


def write_workbook(output_path: Path, df: pd.DataFrame, sheet_name: str = "Jobs") -> Path:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(output_path, engine="openpyxl") as writer:
        df.to_excel(writer, sheet_name=sheet_name, index=False)
    return output_path


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        description="Generate a sample job-upload workbook",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s jobs.xlsx
  %(prog)s jobs.xlsx --rows 200 --duplicates 20 --seed 7
        """,
    )
    parser.add_argument("output", type=Path, help="Output .xlsx path")
    parser.add_argument("--rows", type=int, default=50, help="Total data rows (default: 50)")
    parser.add_argument("--duplicates", type=int, default=5, help="Rows repeating an earlier key (default: 5)")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    args = parser.parse_args(argv)

    if args.rows <= 0:
        print("Error: --rows must be positive", file=sys.stderr)
        return 1
    if not 0 <= args.duplicates < args.rows:
        print("Error: --duplicates must be between 0 and rows - 1", file=sys.stderr)
        return 1

    df = generate_jobs(args.rows, args.duplicates, seed=args.seed)
    path = write_workbook(args.output, df)
    print(f"Created workbook: {path}")
    print(f"  Rows: {len(df.index)} ({args.duplicates} in-file duplicates)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
