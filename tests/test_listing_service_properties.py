"""Property-based tests for the provider listing service.

Properties covered:
- Incremental filter correctness: a cursor equal to an entity's stamp
  excludes it, a cursor one second earlier includes it
- Unset-timestamp exclusion under any cursor
- Malformed filter rejection before the catalog is queried
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest
import structlog
from hypothesis import given, settings
from hypothesis import strategies as st

from taxonomy_sync.errors import InvalidParameterError, ListingError, NotFoundError
from taxonomy_sync.models.taxonomy import format_timestamp
from taxonomy_sync.provider.listing_service import ListingService, parse_modified_since
from taxonomy_sync.provider.modification_tracker import ModificationTracker
from taxonomy_sync.storage.catalog_store import InMemoryCatalogStore
from taxonomy_sync.storage.timestamp_store import InMemoryTimestampStore

log = structlog.stdlib.get_logger()

stamps = st.datetimes(
    min_value=datetime(2001, 1, 1), max_value=datetime(2099, 1, 1), timezones=st.just(timezone.utc)
).map(lambda value: value.replace(microsecond=0))


def build_service(catalog: InMemoryCatalogStore | None = None, clock=None):
    store = InMemoryTimestampStore()
    tracker = ModificationTracker(store, clock=clock) if clock else ModificationTracker(store)
    catalog = catalog or InMemoryCatalogStore()
    catalog.add_attribute_listener(tracker.on_attribute_changed)
    catalog.add_term_listener(tracker.on_term_changed)
    return ListingService(catalog, tracker), catalog, tracker, store


class TestIncrementalFilter:
    """A listing with ``modified_since=t`` returns exactly the entities stamped after t."""

    @given(stamp=stamps)
    @settings(max_examples=100)
    def test_attribute_cursor_boundaries(self, stamp: datetime):
        service, catalog, _, _ = build_service(clock=lambda: stamp)
        catalog.create_attribute("color", "Color", "select", "menu_order", False)

        at_stamp = service.list_attributes(modified_since=format_timestamp(stamp))
        before = service.list_attributes(
            modified_since=format_timestamp(stamp - timedelta(seconds=1))
        )

        assert at_stamp == []
        assert [a.slug for a in before] == ["pa_color"]
        assert before[0].modified_gmt == stamp

    @given(stamp=stamps)
    @settings(max_examples=100)
    def test_term_cursor_boundaries(self, stamp: datetime):
        service, catalog, _, _ = build_service(clock=lambda: stamp)
        catalog.create_attribute("size", "Size", "select", "menu_order", False)
        catalog.create_term("pa_size", "Small", "small")

        at_stamp = service.list_terms("pa_size", modified_since=format_timestamp(stamp))
        before = service.list_terms(
            "pa_size", modified_since=format_timestamp(stamp - timedelta(seconds=1))
        )

        assert at_stamp == []
        assert [t.slug for t in before] == ["small"]

    @given(stamp_offsets=st.lists(st.integers(min_value=0, max_value=1000), min_size=1, max_size=8),
           cursor_offset=st.integers(min_value=-1, max_value=1001))
    @settings(max_examples=100)
    def test_only_strictly_newer_entities_pass(self, stamp_offsets: list[int], cursor_offset: int):
        base = datetime(2024, 1, 1, tzinfo=timezone.utc)
        service, catalog, _, store = build_service()
        for index, offset in enumerate(stamp_offsets):
            attribute_id = catalog.create_attribute(f"attr{index}", f"Attr {index}", "select", "menu_order", False)
            store.set("attribute", attribute_id, base + timedelta(seconds=offset))

        cursor = base + timedelta(seconds=cursor_offset)
        result = service.list_attributes(modified_since=format_timestamp(cursor))

        expected = [f"pa_attr{i}" for i, offset in enumerate(stamp_offsets) if offset > cursor_offset]
        assert [a.slug for a in result] == expected

    def test_no_filter_returns_everything_in_catalog_order(self):
        service, catalog, _, _ = build_service()
        for name in ("size", "color", "material"):
            catalog.create_attribute(name, name.title(), "select", "menu_order", False)

        assert [a.slug for a in service.list_attributes()] == ["pa_size", "pa_color", "pa_material"]
        assert [a.slug for a in service.list_attributes(modified_since="")] == [
            "pa_size",
            "pa_color",
            "pa_material",
        ]


class TestUnsetTimestampExclusion:
    """Entities never stamped are excluded from every filtered listing."""

    @given(cursor=st.datetimes(min_value=datetime(1971, 1, 1), max_value=datetime(2999, 1, 1)))
    @settings(max_examples=100)
    def test_unstamped_attribute_never_listed_with_filter(self, cursor: datetime):
        catalog = InMemoryCatalogStore()
        catalog.create_attribute("legacy", "Legacy", "select", "menu_order", False)
        # Tracker wired after creation: the attribute carries no stamp.
        service, _, _, _ = build_service(catalog=catalog)

        assert service.list_attributes(modified_since=format_timestamp(cursor)) == []
        unfiltered = service.list_attributes()
        assert [a.slug for a in unfiltered] == ["pa_legacy"]
        assert unfiltered[0].modified_gmt is None

    @given(cursor=st.datetimes(min_value=datetime(1971, 1, 1), max_value=datetime(2999, 1, 1)))
    @settings(max_examples=50)
    def test_unstamped_term_never_listed_with_filter(self, cursor: datetime):
        catalog = InMemoryCatalogStore()
        catalog.create_attribute("legacy", "Legacy", "select", "menu_order", False)
        catalog.create_term("pa_legacy", "Old", "old")
        service, _, _, _ = build_service(catalog=catalog)

        assert service.list_terms("pa_legacy", modified_since=format_timestamp(cursor)) == []
        assert [t.slug for t in service.list_terms("pa_legacy")] == ["old"]


class TestMalformedFilterRejection:
    """Malformed cursors raise before any catalog query."""

    @pytest.mark.parametrize(
        "value",
        [
            "not-a-date",
            "2024-01-15",
            "2024-01-15 14:30:00",
            "2024-01-15T14:30",
            "2024-01-15T14:30:00+02:00",
            "2024-13-01T00:00:00",
            "2024-02-30T10:00:00Z",
            " 2024-01-15T14:30:00Z",
        ],
    )
    def test_invalid_values_rejected_without_query(self, value: str):
        catalog = Mock()
        service = ListingService(catalog, Mock())

        with pytest.raises(InvalidParameterError) as exc_info:
            service.list_attributes(modified_since=value)

        assert exc_info.value.param == "modified_since"
        assert exc_info.value.status_code == 400
        catalog.list_attributes.assert_not_called()

    @given(text=st.text(max_size=40).filter(lambda s: s and "T" not in s))
    @settings(max_examples=100)
    def test_arbitrary_text_without_time_separator_rejected(self, text: str):
        with pytest.raises(InvalidParameterError):
            parse_modified_since(text)

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("2024-01-15T14:30:00Z", datetime(2024, 1, 15, 14, 30, tzinfo=timezone.utc)),
            ("2024-01-15T14:30:00", datetime(2024, 1, 15, 14, 30, tzinfo=timezone.utc)),
            (
                "2024-01-15T14:30:00.5Z",
                datetime(2024, 1, 15, 14, 30, 0, 500000, tzinfo=timezone.utc),
            ),
            (
                "2024-01-15T14:30:00.123456789",
                datetime(2024, 1, 15, 14, 30, 0, 123456, tzinfo=timezone.utc),
            ),
        ],
    )
    def test_valid_values_parse_as_utc(self, value: str, expected: datetime):
        assert parse_modified_since(value) == expected

    def test_term_listing_rejects_date_after_slug_validation(self):
        service, catalog, _, _ = build_service()
        catalog.create_attribute("color", "Color", "select", "menu_order", False)

        with pytest.raises(InvalidParameterError) as exc_info:
            service.list_terms("pa_color", modified_since="yesterday")
        assert exc_info.value.param == "modified_since"


class TestLookupsAndErrors:
    def test_get_attribute_accepts_prefixed_and_bare_slug(self):
        service, catalog, _, _ = build_service()
        catalog.create_attribute("color", "Color", "select", "name", True)

        for slug in ("pa_color", "color"):
            attribute = service.get_attribute(slug)
            assert attribute.slug == "pa_color"
            assert attribute.name == "Color"
            assert attribute.order_by == "name"
            assert attribute.has_archives is True

    def test_get_attribute_unknown_slug(self):
        service, _, _, _ = build_service()

        with pytest.raises(NotFoundError) as exc_info:
            service.get_attribute("pa_missing")
        assert exc_info.value.to_payload()["data"] == {"status": 404, "slug": "pa_missing"}

    @pytest.mark.parametrize("slug", ["color", "pa_unknown", "product_tag"])
    def test_list_terms_rejects_invalid_taxonomy(self, slug: str):
        service, catalog, _, _ = build_service()
        catalog.create_attribute("color", "Color", "select", "menu_order", False)
        catalog.register_taxonomy("product_tag", "Tags")

        with pytest.raises(InvalidParameterError) as exc_info:
            service.list_terms(slug)
        assert exc_info.value.param == "attribute_slug"

    def test_catalog_failure_while_listing_terms_is_listing_error(self):
        catalog = Mock()
        catalog.taxonomy_exists.return_value = True
        catalog.list_terms.side_effect = RuntimeError("connection lost")
        service = ListingService(catalog, Mock())

        with pytest.raises(ListingError) as exc_info:
            service.list_terms("pa_color")
        assert exc_info.value.status_code == 500
        assert exc_info.value.code == "terms_fetch_error"

    def test_term_listing_carries_meta_and_swatch_url(self):
        service, catalog, _, _ = build_service()
        catalog.create_attribute("color", "Color", "select", "menu_order", False)
        term_id = catalog.create_term("pa_color", "Red", "red", "Bright red")
        catalog.update_term_meta(term_id, "term_price", "2.50")
        catalog.update_term_meta(term_id, "_term_suffix", "+")
        asset_id = catalog.create_asset(b"png", "red.png", "Red", "image/png")
        catalog.update_term_meta(term_id, "thumbnail_id", str(asset_id))

        [term] = service.list_terms("pa_color")

        assert term.description == "Bright red"
        assert term.meta.term_price == "2.50"
        assert term.meta.term_suffix == "+"
        assert term.meta.thumbnail_id == asset_id
        assert term.swatch_image_url == catalog.get_asset_url(asset_id)

    def test_term_without_image_has_no_swatch_url(self):
        service, catalog, _, _ = build_service()
        catalog.create_attribute("color", "Color", "select", "menu_order", False)
        catalog.create_term("pa_color", "Blue", "blue")

        [term] = service.list_terms("pa_color")

        assert term.meta.thumbnail_id is None
        assert term.swatch_image_url is None
        assert term.meta.term_price == ""
