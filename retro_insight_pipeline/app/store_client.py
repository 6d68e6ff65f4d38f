"""
Client for the remote retrospective dataset store.

Rationale:
- Reads fail softly: any transport or shape problem is logged and yields an empty mapping,
  so the dashboard shows "no data" instead of an error.
- Writes raise TransportFailure so the data manager can show an inline message.
- Both read shapes share one normalization pass over the raw store documents.
"""

import logging
import os
import re
from typing import Any, Dict, List, Optional

import httpx

from .errors import MalformedResponse, TransportFailure
from .utils import ROW_DELIMITER

logger = logging.getLogger(__name__)

DEFAULT_STORE_URL = "http://localhost:5000/api/retro-data"

# Reserved document identity key, never a category.
IDENTITY_KEY = "_id"

# Sole item written into a freshly created category.
NO_DATA = "No existen datos"


def _base_url() -> str:
    return os.getenv("RETRO_STORE_URL", DEFAULT_STORE_URL).rstrip("/")


def _timeout() -> float:
    return float(os.getenv("RETRO_STORE_TIMEOUT", "30"))


def _client(client: Optional[httpx.AsyncClient]) -> httpx.AsyncClient:
    return client or httpx.AsyncClient(timeout=_timeout())


def format_category_name(category: str) -> str:
    """UI label for a stored key: 'loQueGusto' -> 'Lo Que Gusto'."""
    label = re.sub(r"([A-Z])", r" \1", category).strip()
    return label[:1].upper() + label[1:]


def revert_category_name(category: str) -> str:
    """Stored key for a UI label: whitespace removed."""
    return re.sub(r"\s+", "", category)


def is_empty_category(items: List[Any]) -> bool:
    """A category with no items, or only the NO_DATA sentinel, counts as empty."""
    return len(items) == 0 or (len(items) == 1 and items[0] == NO_DATA)


def _record_to_display(record: Dict[str, Any]) -> str:
    return ROW_DELIMITER.join(str(v) for v in record.values())


def _item_to_record(item: Any) -> Dict[str, str]:
    if isinstance(item, dict):
        return {str(k): str(v) for k, v in item.items()}
    return {"text": str(item)}


def normalize_documents(raw: Any, as_records: bool = False) -> Dict[str, List[Any]]:
    """
    Merge raw store documents into one category mapping.
    - raw may be a single document (dict) or a list of documents; lists are concatenated per category
    - the identity key and any non-list category are dropped
    - as_records=False collapses record items into display strings, True keeps them as records
    Raises MalformedResponse when raw is neither a dict nor a list of dicts.
    """
    if isinstance(raw, dict):
        documents = [raw]
    elif isinstance(raw, list):
        documents = raw
    else:
        raise MalformedResponse(f"Store returned {type(raw).__name__}, expected document(s)")

    merged: Dict[str, List[Any]] = {}
    for doc in documents:
        if not isinstance(doc, dict):
            raise MalformedResponse(f"Store document is {type(doc).__name__}, expected an object")
        for key, value in doc.items():
            if key == IDENTITY_KEY:
                continue
            if not isinstance(value, list):
                logger.debug(f"Skipping non-list category {key!r}")
                continue
            if as_records:
                items = [_item_to_record(item) for item in value]
            else:
                items = [_record_to_display(item) if isinstance(item, dict) else str(item) for item in value]
            merged.setdefault(key, []).extend(items)
    return merged


async def _fetch_raw(client: Optional[httpx.AsyncClient]) -> Any:
    http = _client(client)
    try:
        response = await http.get(_base_url())
        response.raise_for_status()
        return response.json()
    finally:
        if client is None:
            await http.aclose()


async def _fetch_normalized(client: Optional[httpx.AsyncClient], as_records: bool) -> Dict[str, List[Any]]:
    try:
        raw = await _fetch_raw(client)
        data = normalize_documents(raw, as_records=as_records)
    except (httpx.HTTPError, ValueError, MalformedResponse) as e:
        logger.error(f"Failed to load retrospective data: {type(e).__name__}: {e}")
        return {}
    logger.info(f"Loaded {len(data)} categories from store")
    return data


async def fetch_display_dataset(client: Optional[httpx.AsyncClient] = None) -> Dict[str, List[str]]:
    """Category -> display strings. Empty mapping on any failure."""
    return await _fetch_normalized(client, as_records=False)


async def fetch_recordset(client: Optional[httpx.AsyncClient] = None) -> Dict[str, List[Dict[str, str]]]:
    """Category -> attribute records. Empty mapping on any failure."""
    return await _fetch_normalized(client, as_records=True)


async def fetch_categories(client: Optional[httpx.AsyncClient] = None) -> List[str]:
    """Raw category keys. Empty list on any failure."""
    http = _client(client)
    try:
        response = await http.get(f"{_base_url()}/categories")
        response.raise_for_status()
        categories = response.json()
    except (httpx.HTTPError, ValueError) as e:
        logger.error(f"Failed to load categories: {type(e).__name__}: {e}")
        return []
    finally:
        if client is None:
            await http.aclose()

    if not isinstance(categories, list):
        logger.error(f"Categories response is not a list: {categories!r}")
        return []
    return [str(c) for c in categories if c != IDENTITY_KEY]


async def _send(method: str, url: str, client: Optional[httpx.AsyncClient], **kwargs) -> Any:
    http = _client(client)
    try:
        response = await http.request(method, url, **kwargs)
        response.raise_for_status()
    except httpx.HTTPStatusError as e:
        status = e.response.status_code
        logger.error(f"{method} {url} failed with status {status}")
        raise TransportFailure(f"Request failed: {status} {e.response.reason_phrase}", status_code=status)
    except httpx.HTTPError as e:
        logger.error(f"{method} {url} failed: {type(e).__name__}: {e}")
        raise TransportFailure(f"Request failed: {e}")
    finally:
        if client is None:
            await http.aclose()

    try:
        return response.json()
    except ValueError:
        return None


async def save_category(category: str, items: List[str], client: Optional[httpx.AsyncClient] = None) -> Any:
    """Replace one category's content in the store."""
    key = revert_category_name(category)
    logger.info(f"Saving {len(items)} items to category {key!r}")
    return await _send("PUT", f"{_base_url()}/{key}", client, json={"values": list(items)})


async def add_category(category: str, client: Optional[httpx.AsyncClient] = None) -> Any:
    """Create a category holding only the NO_DATA sentinel."""
    return await save_category(category, [NO_DATA], client=client)


async def upload_csv(
    category: str,
    filename: str,
    content: bytes,
    client: Optional[httpx.AsyncClient] = None,
) -> Any:
    """Forward a CSV file to the store for bulk append into one category."""
    key = revert_category_name(category)
    logger.info(f"Uploading CSV {filename!r} ({len(content)} bytes) to category {key!r}")
    return await _send(
        "POST",
        f"{_base_url()}/upload-csv",
        client,
        files={"file": (filename, content, "text/csv")},
        data={"category": key},
    )
