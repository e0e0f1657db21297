"""Custom metrics for the menu link service."""

from opentelemetry import metrics

meter = metrics.get_meter("menu-link-svc")

links_created_counter = meter.create_counter(
    name="menu_links_created_total",
    description="Total number of menu links created",
    unit="1",
)

slug_collision_counter = meter.create_counter(
    name="menu_link_slug_collisions_total",
    description="Slug candidates rejected by the uniqueness constraint",
    unit="1",
)

slug_exhausted_counter = meter.create_counter(
    name="menu_link_slug_exhausted_total",
    description="Link writes that ran out of slug attempts",
    unit="1",
)

visits_recorded_counter = meter.create_counter(
    name="menu_link_visits_recorded_total",
    description="Total number of visits recorded",
    unit="1",
)

visit_record_failure_counter = meter.create_counter(
    name="menu_link_visit_record_failures_total",
    description="Visits that could not be recorded, by reason",
    unit="1",
)

visits_purged_counter = meter.create_counter(
    name="menu_link_visits_purged_total",
    description="Visits removed by the retention purge",
    unit="1",
)

summarize_duration_histogram = meter.create_histogram(
    name="menu_link_summarize_duration_seconds",
    description="Duration of analytics summaries",
    unit="s",
)


def record_link_created(attempts: int) -> None:
    """Record a created link.

    Args:
        attempts: Slug attempts it took to find a free slug
    """
    links_created_counter.add(1, {"attempts": attempts})


def record_slug_collision(operation: str) -> None:
    """Record a slug rejected by the uniqueness constraint.

    Args:
        operation: "create" or "update"
    """
    slug_collision_counter.add(1, {"operation": operation})


def record_slug_exhausted(operation: str) -> None:
    slug_exhausted_counter.add(1, {"operation": operation})


def record_visit_recorded(attribution: str) -> None:
    """Record a stored visit.

    Args:
        attribution: Where the visit's source came from: "request",
            "link_default" or "unknown". Never the source value itself,
            which viewers control.
    """
    visits_recorded_counter.add(1, {"attribution": attribution})


def record_visit_failure(reason: str) -> None:
    """Record a visit that was dropped.

    Args:
        reason: Short reason, e.g. "inactive", "not_found", "storage"
    """
    visit_record_failure_counter.add(1, {"reason": reason})


def record_visits_purged(count: int) -> None:
    visits_purged_counter.add(count)


def record_summarize_duration(scope: str, duration_seconds: float) -> None:
    """Record how long a summary took.

    Args:
        scope: "link" or "menu"
        duration_seconds: Duration in seconds
    """
    summarize_duration_histogram.record(duration_seconds, {"scope": scope})
