"""Read-only visit analytics for links and menus."""

import logging
import time
from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import UTC, datetime

from menu_link_service.exceptions import NotFoundError, ValidationError
from menu_link_service.models.visit_models import UNKNOWN_BUCKET, LinkSummary, Visit
from menu_link_service.observability.decorators import traced
from menu_link_service.observability.metrics import record_summarize_duration
from menu_link_service.repositories.link_repositories import LinkRepository
from menu_link_service.repositories.menu_repositories import MenuRepository
from menu_link_service.repositories.visit_repositories import VisitRepository, as_utc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimeRange:
    """Inclusive time window for analytics queries.

    Attributes:
        start: Earliest visit time to include, None for unbounded
        end: Latest visit time to include, None for unbounded
    """

    start: datetime | None = None
    end: datetime | None = None

    def __post_init__(self) -> None:
        if self.start is not None and self.end is not None and as_utc(self.start) > as_utc(self.end):
            raise ValidationError("Time range start must not be after end")


def summarize_visits(visits: Iterable[Visit]) -> LinkSummary:
    """Count visits per source, table, country and UTC day.

    Missing dimensions are counted under "unknown" so each breakdown sums to
    the total.
    """
    by_source: Counter[str] = Counter()
    by_table: Counter[str] = Counter()
    by_country: Counter[str] = Counter()
    by_day: Counter[str] = Counter()
    total = 0

    for visit in visits:
        total += 1
        by_source[visit.source or UNKNOWN_BUCKET] += 1
        by_table[visit.table or UNKNOWN_BUCKET] += 1
        by_country[visit.country or UNKNOWN_BUCKET] += 1
        by_day[visit.timestamp.astimezone(UTC).date().isoformat()] += 1

    return LinkSummary(
        total=total,
        by_source=dict(by_source),
        by_table=dict(by_table),
        by_country=dict(by_country),
        by_day=dict(sorted(by_day.items())),
    )


class AnalyticsAggregator:
    """Service deriving visit statistics from the visit log.

    Never writes to visits or links.
    """

    def __init__(
        self,
        visit_repository: VisitRepository,
        link_repository: LinkRepository,
        menu_repository: MenuRepository,
    ) -> None:
        """Initialize the AnalyticsAggregator.

        Args:
            visit_repository: Repository for visit rows
            link_repository: Repository used to check links and list a menu's links
            menu_repository: Repository used to check that a menu exists
        """
        self.visit_repository = visit_repository
        self.link_repository = link_repository
        self.menu_repository = menu_repository

    def _visits_for(self, link_id: str, time_range: TimeRange) -> list[Visit]:
        return self.visit_repository.list_visits_for_link(
            link_id, start=time_range.start, end=time_range.end
        )

    @traced("analytics.summarize")
    async def summarize(self, link_id: str, time_range: TimeRange | None = None) -> LinkSummary:
        """Summarize visits for one link.

        Args:
            link_id: Link to summarize
            time_range: Optional window; unbounded by default

        Returns:
            LinkSummary (all zero when there are no visits)

        Raises:
            NotFoundError: If the link does not exist
            TransientStorageError: On storage failure
        """
        started = time.perf_counter()
        time_range = time_range or TimeRange()

        if self.link_repository.get_link(link_id) is None:
            raise NotFoundError(f"Link {link_id} not found", resource="link", resource_id=link_id)

        summary = summarize_visits(self._visits_for(link_id, time_range))

        record_summarize_duration("link", time.perf_counter() - started)
        return summary

    @traced("analytics.summarize_menu")
    async def summarize_menu(self, menu_id: str, time_range: TimeRange | None = None) -> LinkSummary:
        """Summarize visits across every link of a menu, active or not.

        Args:
            menu_id: Menu to summarize
            time_range: Optional window; unbounded by default

        Returns:
            LinkSummary (all zero when the menu has no links or visits)

        Raises:
            NotFoundError: If the menu does not exist
            TransientStorageError: On storage failure
        """
        started = time.perf_counter()
        time_range = time_range or TimeRange()

        if self.menu_repository.get_menu(menu_id) is None:
            raise NotFoundError(f"Menu {menu_id} not found", resource="menu", resource_id=menu_id)

        visits: list[Visit] = []
        for link in self.link_repository.list_links_for_menu(menu_id):
            visits.extend(self._visits_for(link.link_id, time_range))

        summary = summarize_visits(visits)

        logger.debug(f"Summarized {summary.total} visits for menu {menu_id}")
        record_summarize_duration("menu", time.perf_counter() - started)
        return summary
