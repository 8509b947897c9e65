"""Utilities for loading shared reference datasets.

The pipeline relies on read-only reference data: the purchase-request line
items, supplier review responses, the contract price table and the drawing
to type-code mapping.  This module centralises loading and lightweight
caching of those datasets, which are stored under
``resources/reference_data`` as JSON documents, and exposes them as typed
records through :class:`ReferenceData`.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from config.settings import settings
from models.records import DrawingRecord, PRLineItem, PriceEntry, ReviewResponse

logger = logging.getLogger(__name__)

_REFERENCE_CACHE: Dict[Tuple[str, str], Dict[str, Any]] = {}

PR_ITEMS = "pr_items"
REVIEW_RESPONSES = "review_responses"
PRICE_TABLE = "price_table"
DRAWING_MAPPING = "drawing_mapping"

# Drawing numbers in review sheets carry a project prefix, e.g. "2589DN512P137".
DRAWING_PREFIX_LENGTH = 4


def _reference_base_path(base_dir: Optional[str] = None) -> Path:
    return Path(base_dir or getattr(settings, "reference_data_dir"))


def load_reference_dataset(name: str, base_dir: Optional[str] = None) -> Dict[str, Any]:
    """Return the JSON payload for ``name`` from the reference store.

    Parameters
    ----------
    name:
        The logical dataset name. The loader will look for
        ``{reference_data_dir}/{name}.json``.
    base_dir:
        Optional override of the reference directory, mainly for tests.
    """

    key = str(name).strip()
    if not key:
        raise ValueError("reference dataset name must be a non-empty string")

    base = _reference_base_path(base_dir)
    cache_key = (str(base), key)
    if cache_key in _REFERENCE_CACHE:
        return _REFERENCE_CACHE[cache_key]

    path = base / f"{key}.json"

    try:
        with path.open("r", encoding="utf-8") as handle:
            payload = json.load(handle)
    except FileNotFoundError:
        logger.warning("Reference dataset '%s' not found at %s", key, path)
        payload = {}
    except json.JSONDecodeError:
        logger.exception("Reference dataset '%s' could not be decoded", key)
        payload = {}

    if not isinstance(payload, dict):
        logger.warning(
            "Reference dataset '%s' is not an object – defaulting to empty dict", key
        )
        payload = {}

    _REFERENCE_CACHE[cache_key] = payload
    return payload


def clear_reference_cache() -> None:
    _REFERENCE_CACHE.clear()


def drawing_lookup_keys(dwg_no: str) -> List[str]:
    """Candidate keys for ``dwg_no``: as given, then without the project prefix."""

    value = (dwg_no or "").strip()
    if not value:
        return []
    keys = [value]
    if len(value) > DRAWING_PREFIX_LENGTH:
        keys.append(value[DRAWING_PREFIX_LENGTH:])
    return keys


@dataclass
class ReferenceData:
    """Typed, read-only view over the reference datasets."""

    pr_items: List[PRLineItem] = field(default_factory=list)
    review_responses: List[ReviewResponse] = field(default_factory=list)
    price_groups: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    price_entries: List[PriceEntry] = field(default_factory=list)
    drawings: Dict[str, DrawingRecord] = field(default_factory=dict)

    @classmethod
    def load(cls, base_dir: Optional[str] = None) -> "ReferenceData":
        pr_payload = load_reference_dataset(PR_ITEMS, base_dir)
        review_payload = load_reference_dataset(REVIEW_RESPONSES, base_dir)
        price_payload = load_reference_dataset(PRICE_TABLE, base_dir)
        drawing_payload = load_reference_dataset(DRAWING_MAPPING, base_dir)

        pr_items = [PRLineItem.from_dict(row) for row in pr_payload.get("records", [])]

        reviews: List[ReviewResponse] = []
        for row in review_payload.get("records", []):
            try:
                reviews.append(ReviewResponse.from_dict(row))
            except ValueError:
                logger.warning(
                    "Skipping review row for %s: %s",
                    row.get("material_no"),
                    row.get("disposition"),
                )

        groups = {
            str(key).upper(): dict(value)
            for key, value in (price_payload.get("groups") or {}).items()
        }
        entries = [PriceEntry.from_dict(row) for row in price_payload.get("entries", [])]

        drawings: Dict[str, DrawingRecord] = {}
        for dwg_no, row in (drawing_payload.get("index") or {}).items():
            record = DrawingRecord.from_dict({"dwg_no": dwg_no, **row})
            drawings[record.dwg_no] = record

        logger.info(
            "Loaded reference data: %d PR items, %d review responses, %d price entries, %d drawings",
            len(pr_items),
            len(reviews),
            len(entries),
            len(drawings),
        )
        return cls(
            pr_items=pr_items,
            review_responses=reviews,
            price_groups=groups,
            price_entries=entries,
            drawings=drawings,
        )

    @property
    def price_codes_by_group(self) -> Dict[str, List[str]]:
        return {
            group: [str(code.get("code")).upper() for code in meta.get("codes", [])]
            for group, meta in self.price_groups.items()
        }

    @property
    def price_code_list(self) -> List[str]:
        return sorted(self.price_groups)

    def item_for(self, material_no: str) -> Optional[PRLineItem]:
        for item in self.pr_items:
            if item.material_no == material_no:
                return item
        return None

    def review_for(self, material_no: str) -> Optional[ReviewResponse]:
        for review in self.review_responses:
            if review.material_no == material_no:
                return review
        return None

    def find_drawing(self, dwg_no: str) -> Optional[DrawingRecord]:
        for key in drawing_lookup_keys(dwg_no):
            record = self.drawings.get(key)
            if record is not None:
                return record
        return None

    def reference_prices(self, type_code: str, limit: int = 10) -> List[PriceEntry]:
        """Price entries for ``type_code``, most recent first, at most ``limit``."""

        code = (type_code or "").strip().upper()
        matches = [entry for entry in self.price_entries if entry.type_code == code]
        matches.sort(key=lambda entry: entry.effective_date, reverse=True)
        return matches[: max(0, limit)]


__all__ = [
    "ReferenceData",
    "clear_reference_cache",
    "drawing_lookup_keys",
    "load_reference_dataset",
]
