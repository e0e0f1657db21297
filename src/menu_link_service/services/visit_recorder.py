"""Visit recording and retention for menu links."""

import hashlib
import hmac
import logging
import uuid
from datetime import UTC, datetime, timedelta

from menu_link_service.models.link_models import TrackingMeta
from menu_link_service.models.visit_models import Visit, VisitContext
from menu_link_service.observability.decorators import traced
from menu_link_service.observability.metrics import (
    record_visit_failure,
    record_visit_recorded,
    record_visits_purged,
)
from menu_link_service.repositories.link_repositories import LinkRepository
from menu_link_service.repositories.visit_repositories import VisitRepository, as_utc

logger = logging.getLogger(__name__)

# Visits are kept for two years (63,072,000 seconds)
VISIT_RETENTION = timedelta(days=730)


def hash_ip(raw_ip: str, salt: str) -> str:
    """One-way keyed hash of an IP address.

    Deployments with different salts produce unrelated hashes for the same IP.
    """
    return hmac.new(salt.encode(), raw_ip.strip().encode(), hashlib.sha256).hexdigest()


def attribution_bucket(context: VisitContext, meta: TrackingMeta) -> str:
    """Fixed label describing where a visit's source came from."""
    if context.source:
        return "request"
    if meta.source:
        return "link_default"
    return "unknown"


class VisitRecorder:
    """Service that appends visits and enforces the retention window.

    Recording is best effort: it never raises to the caller, so a storage
    outage degrades analytics rather than the menu page.
    """

    def __init__(
        self,
        visit_repository: VisitRepository,
        link_repository: LinkRepository,
        ip_hash_salt: str,
        retention: timedelta = VISIT_RETENTION,
    ) -> None:
        """Initialize the VisitRecorder.

        Args:
            visit_repository: Repository for visit rows
            link_repository: Repository used to read the visited link
            ip_hash_salt: Process-wide secret mixed into IP hashes
            retention: Age after which visits are purged

        Raises:
            ValueError: If ip_hash_salt is empty
        """
        if not ip_hash_salt:
            raise ValueError("ip_hash_salt must be a non-empty secret")

        self.visit_repository = visit_repository
        self.link_repository = link_repository
        self.ip_hash_salt = ip_hash_salt
        self.retention = retention

    @traced("visit_recorder.record_visit")
    async def record_visit(
        self,
        link_id: str,
        raw_ip: str,
        user_agent: str | None = None,
        referrer: str | None = None,
        context: VisitContext | None = None,
    ) -> Visit | None:
        """Record a visit to a link.

        Request-supplied source/table/location win over the link's tracking
        metadata. Nothing is recorded for unknown or inactive links.

        Args:
            link_id: Link that was viewed
            raw_ip: Viewer IP; only its salted hash is stored
            user_agent: Viewer user agent
            referrer: HTTP referrer
            context: Request-derived attribution and geo data

        Returns:
            The recorded Visit, or None if nothing was recorded
        """
        context = context or VisitContext()

        try:
            link = self.link_repository.get_link(link_id)
            if link is None:
                logger.warning(f"Visit for unknown link {link_id} dropped")
                record_visit_failure("not_found")
                return None
            if not link.is_active:
                logger.info(f"Visit for inactive link {link_id} not recorded")
                record_visit_failure("inactive")
                return None

            meta = link.tracking_meta
            now = datetime.now(UTC)
            visit = Visit(
                visit_id=f"vst_{uuid.uuid4().hex[:16]}",
                link_id=link_id,
                timestamp=now,
                ip_hash=hash_ip(raw_ip, self.ip_hash_salt),
                user_agent=user_agent,
                referrer=referrer,
                source=context.source or meta.source,
                table=context.table or meta.table,
                location=context.location or meta.location,
                country=context.country,
                city=context.city,
                expires_at=int((now + self.retention).timestamp()),
            )

            if not self.visit_repository.save_visit(visit):
                record_visit_failure("storage")
                return None

        except Exception:
            # Recording must never break menu delivery
            logger.exception(f"Failed to record visit for link {link_id}")
            record_visit_failure("error")
            return None

        record_visit_recorded(attribution_bucket(context, link.tracking_meta))
        return visit

    @traced("visit_recorder.purge_expired")
    async def purge_expired(self, now: datetime | None = None) -> int:
        """Delete visits older than the retention window.

        Meant to run on a schedule; never called from record_visit.

        Args:
            now: Reference time (defaults to the current time)

        Returns:
            Number of visits deleted

        Raises:
            TransientStorageError: On storage failure
        """
        cutoff = as_utc(now or datetime.now(UTC)) - self.retention
        deleted = self.visit_repository.purge_visits_before(cutoff)

        record_visits_purged(deleted)
        logger.info(f"Purged {deleted} visits recorded before {cutoff.isoformat()}")
        return deleted
