"""Exhaustive candidate retrieval over a paginated listing port.

Orthogonality checks must see every matching experiment. Validating
against a single page would let a conflicting experiment through, so the
retriever walks all pages in order with the same filters restated on
every request, including the instant derived statuses are computed at.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import structlog

from xpmanager.errors import InternalError

if TYPE_CHECKING:
    from xpmanager.models.experiment import Experiment
    from xpmanager.models.filters import ExperimentFilter
    from xpmanager.protocols import ExperimentListingPort

logger = structlog.get_logger()


class CandidateRetriever:
    def __init__(self, listing: ExperimentListingPort) -> None:
        self._listing = listing

    def fetch_all(self, project_id: int, filters: ExperimentFilter) -> list[Experiment]:
        """Return every experiment matching *filters*, across all pages.

        Pages are fetched sequentially; the first failure aborts the whole
        retrieval.
        """
        filters = filters.pinned()
        first = filters.for_page(1)
        experiments, paging = self._listing.list_experiments(project_id, first)
        if paging is None:
            raise InternalError("Missing pagination data for existing experiments")

        candidates = list(experiments)
        for page in range(2, paging.pages + 1):
            page_experiments, _ = self._listing.list_experiments(
                project_id, filters.for_page(page)
            )
            candidates.extend(page_experiments)

        logger.debug(
            "Fetched candidate experiments",
            project_id=project_id,
            pages=paging.pages,
            count=len(candidates),
        )
        return candidates
