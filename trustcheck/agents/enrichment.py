"""
Record enrichment — runs the configured enrichers over flagged records.

Enrichment is cosmetic: a failing enricher (or one that returns a different
number of records) is logged and its output ignored, never aborting the save.
"""

import logging
from typing import List, Sequence

from ..schemas import FlaggedRecord
from .deps import Enricher

logger = logging.getLogger(__name__)


async def apply_enrichers(enrichers: Sequence[Enricher], records: List[FlaggedRecord]) -> List[FlaggedRecord]:
    """Run each enricher in order; returns records in input order."""
    for enricher in enrichers:
        if not records:
            break
        records = await _enrich(enricher, records)
    return records


async def _enrich(enricher: Enricher, records: List[FlaggedRecord]) -> List[FlaggedRecord]:
    name = type(enricher).__name__
    try:
        enriched = await enricher.enrich(records)
    except Exception as e:
        logger.warning(f"Enricher {name} failed, keeping records as-is: {e}")
        return records
    if len(enriched) != len(records):
        logger.warning(f"Enricher {name} changed record count, ignoring its output")
        return records
    return list(enriched)
