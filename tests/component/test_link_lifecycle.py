"""Component tests running the real services over in-memory storage."""

import asyncio
import random
import threading
from concurrent.futures import ThreadPoolExecutor
from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from menu_link_service.exceptions import SlugConflictError, SlugExhaustedError
from menu_link_service.handlers.api_handler import create_app
from menu_link_service.models.link_models import MenuLink
from menu_link_service.models.menu_models import Menu, Restaurant
from menu_link_service.models.visit_models import Visit
from menu_link_service.repositories.visit_repositories import as_utc
from menu_link_service.services.analytics_service import AnalyticsAggregator
from menu_link_service.services.link_registry import LinkRegistry
from menu_link_service.services.menu_directory import MenuDirectory
from menu_link_service.services.visit_recorder import VisitRecorder

API_KEY = "component-key"


class InMemoryLinkStore:
    """Link storage enforcing slug uniqueness the way the conditional writes do."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.links: dict[str, MenuLink] = {}
        self.slugs: dict[str, str] = {}
        self.create_calls = 0

    def create_link(self, link: MenuLink) -> None:
        with self._lock:
            self.create_calls += 1
            if link.slug in self.slugs:
                raise SlugConflictError(f"Slug {link.slug} already claimed", slug=link.slug)
            self.slugs[link.slug] = link.link_id
            self.links[link.link_id] = link

    def change_slug(self, link: MenuLink, old_slug: str) -> bool:
        with self._lock:
            if link.slug in self.slugs:
                raise SlugConflictError(f"Slug {link.slug} already claimed", slug=link.slug)
            stored = self.links.get(link.link_id)
            if stored is None or stored.slug != old_slug:
                return False
            if self.slugs.get(old_slug) == link.link_id:
                del self.slugs[old_slug]
            self.slugs[link.slug] = link.link_id
            self.links[link.link_id] = link
            return True

    def save_link(self, link: MenuLink) -> bool:
        with self._lock:
            stored = self.links.get(link.link_id)
            if stored is None or stored.slug != link.slug:
                return False
            self.links[link.link_id] = link
            return True

    def get_link(self, link_id: str) -> MenuLink | None:
        return self.links.get(link_id)

    def get_link_by_slug(self, slug: str) -> MenuLink | None:
        link_id = self.slugs.get(slug)
        return self.links.get(link_id) if link_id else None

    def list_links_for_menu(self, menu_id: str) -> list[MenuLink]:
        links = [link for link in self.links.values() if link.menu_id == menu_id]
        return sorted(links, key=lambda link: link.created_at, reverse=True)


class InMemoryVisitStore:
    def __init__(self) -> None:
        self.visits: list[Visit] = []

    def save_visit(self, visit: Visit) -> bool:
        self.visits.append(visit)
        return True

    def list_visits_for_link(
        self, link_id: str, start: datetime | None = None, end: datetime | None = None
    ) -> list[Visit]:
        return [
            visit
            for visit in sorted(self.visits, key=lambda v: v.visit_key)
            if visit.link_id == link_id
            and (start is None or visit.timestamp >= as_utc(start))
            and (end is None or visit.timestamp <= as_utc(end))
        ]

    def purge_visits_before(self, cutoff: datetime) -> int:
        kept = [visit for visit in self.visits if visit.timestamp >= cutoff]
        deleted = len(self.visits) - len(kept)
        self.visits = kept
        return deleted


class InMemoryMenuStore:
    def __init__(self, menus: list[Menu]) -> None:
        self.menus = {menu.menu_id: menu for menu in menus}

    def get_menu(self, menu_id: str) -> Menu | None:
        return self.menus.get(menu_id)

    def find_menus_by_restaurant(self, restaurant_id: str) -> list[Menu]:
        return [menu for menu in self.menus.values() if menu.restaurant_id == restaurant_id]


class InMemoryRestaurantStore:
    def __init__(self, restaurants: list[Restaurant]) -> None:
        self.restaurants = {r.restaurant_id: r for r in restaurants}

    def get_restaurant(self, restaurant_id: str) -> Restaurant | None:
        return self.restaurants.get(restaurant_id)


@pytest.fixture
def link_store() -> InMemoryLinkStore:
    return InMemoryLinkStore()


@pytest.fixture
def visit_store() -> InMemoryVisitStore:
    return InMemoryVisitStore()


@pytest.fixture
def menu_store(sample_menu: Menu) -> InMemoryMenuStore:
    return InMemoryMenuStore([sample_menu])


@pytest.fixture
def recorder(visit_store: InMemoryVisitStore, link_store: InMemoryLinkStore) -> VisitRecorder:
    return VisitRecorder(visit_store, link_store, ip_hash_salt="component-salt")


@pytest.mark.component
class TestSlugUniqueness:
    """Slug allocation under contention."""

    def test_concurrent_creates_never_share_a_slug(
        self, link_store: InMemoryLinkStore, menu_store: InMemoryMenuStore, mock_menu_id: str
    ) -> None:
        """Test that parallel writers drawing from a tiny slug pool stay unique."""
        pool = [f"pool{n:04d}" for n in range(40)]
        registry = LinkRegistry(link_store, menu_store, slug_generator=lambda: random.choice(pool))

        def create() -> MenuLink | None:
            try:
                return asyncio.run(registry.create_link(mock_menu_id))
            except SlugExhaustedError:
                return None

        with ThreadPoolExecutor(max_workers=8) as executor:
            results = list(executor.map(lambda _: create(), range(30)))

        created = [link for link in results if link is not None]
        slugs = [link.slug for link in created]

        assert len(set(slugs)) == len(slugs)
        assert len(link_store.links) == len(created)
        assert set(link_store.slugs) == set(slugs)
        for link in created:
            assert link_store.get_link_by_slug(link.slug) == link

    @pytest.mark.asyncio
    async def test_exhaustion_leaves_no_partial_record(
        self, link_store: InMemoryLinkStore, menu_store: InMemoryMenuStore, mock_menu_id: str
    ) -> None:
        """Test that a generator stuck on a taken slug fails cleanly after five tries."""
        registry = LinkRegistry(link_store, menu_store, slug_generator=lambda: "takenSlg")
        first = await registry.create_link(mock_menu_id)

        with pytest.raises(SlugExhaustedError):
            await registry.create_link(mock_menu_id)

        assert list(link_store.links) == [first.link_id]
        assert link_store.slugs == {"takenSlg": first.link_id}
        assert link_store.create_calls == 1 + 5

    @pytest.mark.asyncio
    async def test_slug_change_releases_old_slug(
        self, link_store: InMemoryLinkStore, menu_store: InMemoryMenuStore, mock_menu_id: str
    ) -> None:
        registry = LinkRegistry(link_store, menu_store)
        link = await registry.create_link(mock_menu_id)

        moved = await registry.update_link(link.link_id, {"slug": "dinner-specials"})

        assert link_store.get_link_by_slug("dinner-specials") == moved
        assert link_store.get_link_by_slug(link.slug) is None

    @pytest.mark.asyncio
    async def test_stale_save_cannot_restore_released_slug(
        self, link_store: InMemoryLinkStore, menu_store: InMemoryMenuStore, mock_menu_id: str
    ) -> None:
        """Test that a write prepared before a slug change does not bring the old slug back."""
        registry = LinkRegistry(link_store, menu_store)
        link = await registry.create_link(mock_menu_id, name="Lunch")
        stale = link.model_copy(update={"name": "Brunch"})

        await registry.update_link(link.link_id, {"slug": "lunch-2026"})

        assert link_store.save_link(stale) is False
        assert link_store.get_link(link.link_id).slug == "lunch-2026"

    @pytest.mark.asyncio
    async def test_concurrent_rename_and_slug_change_keep_both(
        self, link_store: InMemoryLinkStore, menu_store: InMemoryMenuStore, mock_menu_id: str
    ) -> None:
        """Test that a rename racing a slug change is re-applied to the moved link."""
        registry = LinkRegistry(link_store, menu_store)
        link = await registry.create_link(mock_menu_id, name="Lunch")
        read_link = link_store.get_link

        def read_then_move(link_id: str) -> MenuLink | None:
            # another writer moves the slug right after the rename reads the row
            snapshot = read_link(link_id)
            if snapshot is not None and snapshot.slug == link.slug:
                link_store.change_slug(snapshot.model_copy(update={"slug": "lunch-2026"}), link.slug)
            return snapshot

        link_store.get_link = read_then_move  # type: ignore[method-assign]
        renamed = await registry.update_link(link.link_id, {"name": "Brunch"})

        assert renamed.slug == "lunch-2026"
        assert renamed.name == "Brunch"
        assert read_link(link.link_id) == renamed
        assert link_store.slugs == {"lunch-2026": link.link_id}


@pytest.mark.component
class TestVisitRetention:
    """Retention purge over stored visits."""

    @pytest.mark.asyncio
    async def test_purge_removes_only_visits_older_than_two_years(
        self, recorder: VisitRecorder, visit_store: InMemoryVisitStore, make_visit
    ) -> None:
        now = datetime(2026, 6, 1, tzinfo=UTC)
        visit_store.save_visit(make_visit(visit_id="vst_old", timestamp=now - timedelta(days=731)))
        visit_store.save_visit(make_visit(visit_id="vst_new", timestamp=now - timedelta(days=30)))

        deleted = await recorder.purge_expired(now=now)

        assert deleted == 1
        assert [visit.visit_id for visit in visit_store.visits] == ["vst_new"]


@pytest.mark.component
class TestLinkLifecycleOverHttp:
    """Create, view, analyze and disable a link through the HTTP API."""

    @pytest.fixture
    def client(
        self,
        link_store: InMemoryLinkStore,
        visit_store: InMemoryVisitStore,
        menu_store: InMemoryMenuStore,
        recorder: VisitRecorder,
    ) -> TestClient:
        app = create_app(
            link_registry=LinkRegistry(link_store, menu_store),
            visit_recorder=recorder,
            analytics=AnalyticsAggregator(visit_store, link_store, menu_store),
            menu_directory=MenuDirectory(menu_store, InMemoryRestaurantStore([])),
            api_keys=[API_KEY],
        )
        return TestClient(app)

    def test_full_lifecycle(self, client: TestClient, visit_store: InMemoryVisitStore, mock_menu_id: str) -> None:
        auth = {"X-API-Key": API_KEY}

        created = client.post(
            f"/menus/{mock_menu_id}/links",
            json={"name": "Patio", "tracking_meta": {"source": "qr", "table": "9"}},
            headers=auth,
        )
        assert created.status_code == 201
        link = created.json()

        viewed = client.get(f"/l/{link['slug']}?utm_source=instagram")
        assert viewed.status_code == 200
        client.get(f"/l/{link['slug']}", headers={"CloudFront-Viewer-Country": "AE"})

        assert len(visit_store.visits) == 2
        assert all(len(visit.ip_hash) == 64 for visit in visit_store.visits)

        summary = client.get(f"/links/{link['link_id']}/analytics", headers=auth).json()
        assert summary["total"] == 2
        assert summary["by_source"] == {"instagram": 1, "qr": 1}
        assert summary["by_table"] == {"9": 2}
        assert summary["by_country"] == {"unknown": 1, "AE": 1}

        disabled = client.post(f"/links/{link['link_id']}/deactivate", headers=auth)
        assert disabled.json()["is_active"] is False

        gone = client.get(f"/l/{link['slug']}")
        assert gone.status_code == 410
        assert len(visit_store.visits) == 2

        menu_summary = client.get(f"/menus/{mock_menu_id}/analytics", headers=auth).json()
        assert menu_summary["total"] == 2
