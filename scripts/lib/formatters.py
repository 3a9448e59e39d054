"""
Output formatters for listing reports.

This module handles wei amount formatting and CSV report generation with
timestamp-based filenames.
"""

import csv
import sys
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import List, Optional, TextIO

from .models import ListingRecord, REPORT_COLUMNS


def format_price(raw_amount: int, decimals: int = 18) -> str:
    """
    Format a token amount with full precision, trimming trailing zeros.

    Args:
        raw_amount: Amount in the token's smallest unit (wei)
        decimals: Number of decimal places of the token

    Returns:
        Formatted amount string with trailing zeros trimmed

    Examples:
        format_price(1000000000000000000) -> "1"
        format_price(1500000000000000000) -> "1.5"
        format_price(909090909090909090) -> "0.90909090909090909"
    """
    if raw_amount == 0:
        return "0"

    if decimals == 0:
        return str(raw_amount)

    amount = Decimal(raw_amount) / Decimal(10**decimals)
    formatted = format(amount, "f")

    if "." in formatted:
        formatted = formatted.rstrip("0").rstrip(".")

    return formatted


def generate_timestamp() -> str:
    """
    Generate a timestamp string for filenames.

    Returns:
        Timestamp in YYYYMMDD_HHMMSS format
    """
    return datetime.now().strftime("%Y%m%d_%H%M%S")


def generate_filename(base_path: str, timestamp: Optional[str] = None) -> str:
    """
    Generate a timestamped filename for the report.

    Examples:
        generate_filename("listings.csv", "20241214_153022")
        -> "listings_20241214_153022.csv"
    """
    if timestamp is None:
        timestamp = generate_timestamp()

    path = Path(base_path)
    suffix = path.suffix or ".csv"
    return str(path.parent / f"{path.stem}_{timestamp}{suffix}")


def write_report_to_stream(records: List[ListingRecord], stream: TextIO) -> None:
    """Write listing records to a CSV stream."""
    writer = csv.writer(stream)
    writer.writerow(REPORT_COLUMNS)

    for record in records:
        writer.writerow(record.to_csv_row(format_price(record.price)))


def write_report(records: List[ListingRecord], output_path: Optional[str] = None) -> Optional[str]:
    """
    Write listing records to a timestamped CSV file or stdout.

    Args:
        records: Submitted listings
        output_path: Base output path. If None, writes to stdout.

    Returns:
        Path of the written file, or None when writing to stdout
    """
    if output_path is None:
        write_report_to_stream(records, sys.stdout)
        return None

    report_file = generate_filename(output_path)
    with open(report_file, "w", newline="", encoding="utf-8") as f:
        write_report_to_stream(records, f)
    return report_file
