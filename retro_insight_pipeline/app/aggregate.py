"""
Static distribution chart: category -> item count.

Independent of the AI pipeline; built straight from the display dataset.
"""

from typing import Any, Dict, List

import pandas as pd

from .store_client import is_empty_category
from .utils import safe_json


def distribution_frame(dataset: Dict[str, List[Any]]) -> pd.DataFrame:
    """
    One row per non-empty category with columns name/value, in dataset order.
    Categories holding only the no-data sentinel count as empty and are left out.
    """
    rows = [
        {"name": name, "value": len(items)}
        for name, items in dataset.items()
        if not is_empty_category(items)
    ]
    return pd.DataFrame(rows, columns=["name", "value"])


def build_distribution(dataset: Dict[str, List[Any]]) -> List[Dict[str, Any]]:
    df = distribution_frame(dataset)
    return safe_json(df.to_dict(orient="records"))
