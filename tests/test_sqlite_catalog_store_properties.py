"""Property-based tests for the SQLite catalog store.

The client catalog must survive the process: a later run, built from scratch
against the same database file, has to see what earlier runs wrote.
"""

import tempfile
from pathlib import Path

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from harness import FakeImageDownloader, ProviderHarness, build_sync_client
from taxonomy_sync.errors import CatalogError
from taxonomy_sync.storage.catalog_store import META_SOURCE_IMAGE_URL, META_THUMBNAIL_ID
from taxonomy_sync.storage.sqlite_catalog_store import SQLiteCatalogStore

slugs = st.text(alphabet="abcdefghijklmnop", min_size=1, max_size=8)


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "catalog.db"


class TestCatalogContract:
    def test_attribute_creation_registers_taxonomy(self, db_path: Path):
        catalog = SQLiteCatalogStore(db_path)
        changed: list[int] = []
        catalog.add_attribute_listener(changed.append)

        attribute_id = catalog.create_attribute("color", "Color", "select", "menu_order", False)

        assert catalog.taxonomy_exists("pa_color")
        assert catalog.get_attribute(attribute_id).label == "Color"
        assert catalog.find_attribute("color").id == attribute_id
        assert changed == [attribute_id]

    def test_duplicate_attribute_and_term_slugs_are_rejected(self, db_path: Path):
        catalog = SQLiteCatalogStore(db_path)
        catalog.create_attribute("color", "Color", "select", "menu_order", False)
        catalog.create_term("pa_color", "Red", "red")

        with pytest.raises(CatalogError):
            catalog.create_attribute("color", "Colour", "select", "menu_order", False)
        with pytest.raises(CatalogError):
            catalog.create_term("pa_color", "Red again", "red")
        with pytest.raises(CatalogError):
            catalog.create_term("pa_size", "Small", "small")

    def test_unknown_records_raise(self, db_path: Path):
        catalog = SQLiteCatalogStore(db_path)

        with pytest.raises(CatalogError):
            catalog.update_attribute(99, "Nope", "select", "menu_order", False)
        with pytest.raises(CatalogError):
            catalog.update_term_meta(99, "term_price", "1")
        with pytest.raises(CatalogError):
            catalog.list_terms("pa_missing")

    def test_term_meta_round_trip(self, db_path: Path):
        catalog = SQLiteCatalogStore(db_path)
        catalog.create_attribute("color", "Color", "select", "menu_order", False)
        term_id = catalog.create_term("pa_color", "Red", "red", "warm")

        catalog.update_term_meta(term_id, "term_price", "2.50")
        catalog.update_term_meta(term_id, "term_price", "3.00")
        catalog.update_term_meta(term_id, META_THUMBNAIL_ID, "7")
        catalog.delete_term_meta(term_id, META_THUMBNAIL_ID)

        assert catalog.get_term_meta(term_id, "term_price") == "3.00"
        assert catalog.get_term_meta(term_id, META_THUMBNAIL_ID) is None
        assert catalog.get_term(term_id).meta == {"term_price": "3.00"}

    def test_asset_meta_is_stored_with_the_asset(self, db_path: Path):
        catalog = SQLiteCatalogStore(db_path, asset_base_url="http://shop.test/assets/")
        url = "https://cdn.example/red.png"

        asset_id = catalog.create_asset(b"png", "red.png", "Red", "image/png", meta={META_SOURCE_IMAGE_URL: url})

        asset = catalog.get_asset(asset_id)
        assert asset.meta == {META_SOURCE_IMAGE_URL: url}
        assert asset.size == 3
        assert catalog.get_asset_url(asset_id) == f"http://shop.test/assets/{asset_id}/red.png"
        assert catalog.find_asset_by_meta(META_SOURCE_IMAGE_URL, url) == asset_id
        with pytest.raises(CatalogError):
            catalog.create_asset(b"", "empty.png", "Empty", "image/png")

    @given(terms=st.lists(slugs, min_size=1, max_size=10, unique=True))
    @settings(max_examples=25, deadline=None)
    def test_contents_survive_reopening(self, terms: list[str]):
        with tempfile.TemporaryDirectory() as tmp_dir:
            path = Path(tmp_dir) / "catalog.db"
            writer = SQLiteCatalogStore(path)
            writer.create_attribute("size", "Size", "select", "name", True)
            for slug in terms:
                term_id = writer.create_term("pa_size", slug.title(), slug)
                writer.update_term_meta(term_id, "term_price", f"{len(slug)}.00")
            writer.close()

            reader = SQLiteCatalogStore(path)
            [attribute] = reader.list_attributes()
            stored = reader.list_terms("pa_size")
            reader.close()

        assert (attribute.name, attribute.order_by, attribute.has_archives) == ("size", "name", True)
        assert [t.slug for t in stored] == terms
        assert all(t.meta["term_price"] == f"{len(t.slug)}.00" for t in stored)


class TestRepeatedRuns:
    @given(shape=st.dictionaries(slugs, st.lists(slugs, max_size=4, unique=True), min_size=1, max_size=3))
    @settings(max_examples=15, deadline=None, suppress_health_check=[HealthCheck.too_slow])
    def test_fresh_client_on_same_database_creates_nothing(self, shape: dict[str, list[str]]):
        provider = ProviderHarness()
        for name, terms in shape.items():
            provider.add_attribute(name, terms=terms)
        term_total = sum(len(terms) for terms in shape.values())

        with tempfile.TemporaryDirectory() as tmp_dir:
            path = Path(tmp_dir) / "catalog.db"
            first_client, first_catalog, _ = build_sync_client(provider, catalog=SQLiteCatalogStore(path))
            first = first_client.sync_attributes_and_terms()
            first_catalog.close()

            second_client, second_catalog, _ = build_sync_client(provider, catalog=SQLiteCatalogStore(path))
            second = second_client.sync_attributes_and_terms()
            attribute_count = len(second_catalog.list_attributes())
            second_catalog.close()

        assert first.attributes.created == len(shape)
        assert first.terms.created == term_total
        assert second.attributes.created == 0
        assert second.terms.created == 0
        assert second.attributes.updated == len(shape)
        assert second.terms.updated == term_total
        assert attribute_count == len(shape)

    def test_swatch_is_not_downloaded_again_by_a_later_process(self, db_path: Path):
        provider = ProviderHarness()
        provider.add_attribute("color")
        provider.add_term("color", "red", image=b"red-swatch")

        first_client, first_catalog, first_downloader = build_sync_client(
            provider, catalog=SQLiteCatalogStore(db_path), downloader=FakeImageDownloader()
        )
        first = first_client.sync_attributes_and_terms()
        first_catalog.close()

        second_client, second_catalog, second_downloader = build_sync_client(
            provider, catalog=SQLiteCatalogStore(db_path), downloader=FakeImageDownloader()
        )
        second = second_client.sync_attributes_and_terms()

        assert first.terms.images_sideloaded == 1
        assert len(first_downloader.downloads) == 1
        assert second.terms.images_sideloaded == 0
        assert second_downloader.downloads == []
        assert len(second_catalog.list_assets()) == 1
        red = second_catalog.find_term("pa_color", "red")
        assert red.meta[META_THUMBNAIL_ID] == str(second_catalog.list_assets()[0].id)
