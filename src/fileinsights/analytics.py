"""Aggregate views over both metadata stores."""

from __future__ import annotations

import logging
from typing import Dict

from fileinsights.extraction.extractor import CONTENT_TYPE
from fileinsights.index.basic_store import BasicStore
from fileinsights.index.content_store import DEFAULT_MAX_TERMS, ContentStore

LOGGER = logging.getLogger(__name__)


class AnalyticsAggregator:
    """File counts by access age and by detected content type."""

    def __init__(
        self,
        basic_store: BasicStore,
        content_store: ContentStore,
        *,
        max_terms: int = DEFAULT_MAX_TERMS,
    ) -> None:
        self.basic_store = basic_store
        self.content_store = content_store
        self.max_terms = max_terms

    def count_by_age(self, now: float | None = None) -> Dict[str, int]:
        return self.basic_store.count_grouped_by_age_bucket(now)

    def count_by_type(self) -> Dict[str, int]:
        """Documents per content type; an unavailable store yields ``{}``."""
        try:
            counts = self.content_store.term_aggregation(CONTENT_TYPE, self.max_terms)
        except Exception as exc:
            LOGGER.error("File type aggregation failed: %s", exc)
            return {}
        LOGGER.info("File type aggregation result: %s", counts)
        return counts
