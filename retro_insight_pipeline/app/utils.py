"""
Small utilities: CSV row parser and JSON-safe conversion.

Rationale:
- CSV import turns each data row into one display string, matching what the store keeps per item.
- Convert pandas/numpy types to native Python types before they reach an API response.
"""

import json
import logging
from typing import List

import numpy as np

from .errors import InsufficientCsv

logger = logging.getLogger(__name__)

# Delimiter used to collapse a multi-field row (or record) into one display string.
ROW_DELIMITER = " | "


def parse_csv_text(text: str) -> List[str]:
    """
    Parse CSV text into display rows.
    - first non-blank line is the header and is discarded
    - each following non-blank line is split on commas, fields trimmed, rejoined with ROW_DELIMITER
    Raises InsufficientCsv when there is no data row.
    """
    rows = [row.strip() for row in text.split("\n")]
    rows = [row for row in rows if row]

    if len(rows) < 2:
        logger.warning(f"Rejected CSV with {len(rows)} non-blank line(s)")
        raise InsufficientCsv("The CSV file does not contain enough data.")

    entries = [ROW_DELIMITER.join(field.strip() for field in row.split(",")) for row in rows[1:]]
    logger.info(f"Parsed {len(entries)} CSV rows")
    return entries


def decode_csv_bytes(content: bytes) -> str:
    """Decode an uploaded CSV file, tolerating a UTF-8 BOM."""
    return content.decode("utf-8-sig")


def safe_json(obj):
    """
    Convert pandas/numpy types to Python native types.
    Rationale: ensure response is JSON serializable for API responses.
    """
    if isinstance(obj, (int, float, str, bool)) or obj is None:
        return obj
    if isinstance(obj, (np.integer, np.floating, np.bool_)):
        return obj.item()
    if isinstance(obj, dict):
        return {safe_json(k): safe_json(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple)):
        return [safe_json(x) for x in obj]
    try:
        return json.loads(json.dumps(obj))
    except (TypeError, ValueError):
        return str(obj)
