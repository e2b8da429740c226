"""Source-URL keyed image cache that prevents duplicate sideloads."""

from typing import Optional

import structlog

from taxonomy_sync.client.downloader import ImageDownloader
from taxonomy_sync.errors import AssetError, CatalogError
from taxonomy_sync.models.taxonomy import ImageAssetRecord
from taxonomy_sync.storage.catalog_store import META_SOURCE_IMAGE_URL, CatalogStore
from taxonomy_sync.sync.models import ImageResolution

log = structlog.stdlib.get_logger()


class ImageDedupCache:
    """Maps remote image URLs to local assets.

    The mapping lives in the catalog itself as ``_source_image_url`` asset
    meta, so it survives across runs and a URL is materialised at most once.
    """

    def __init__(self, catalog: CatalogStore, downloader: ImageDownloader):
        self._catalog = catalog
        self._downloader = downloader

    def find_local_asset(self, source_url: str) -> Optional[int]:
        """Return the id of the asset previously materialised for ``source_url``."""
        if not source_url:
            return None
        return self._catalog.find_asset_by_meta(META_SOURCE_IMAGE_URL, source_url)

    def get_record(self, source_url: str) -> Optional[ImageAssetRecord]:
        asset_id = self.find_local_asset(source_url)
        if asset_id is None:
            return None
        return ImageAssetRecord(source_url=source_url, local_asset_id=asset_id)

    def ensure_local_asset(self, source_url: str, title: str = "") -> ImageResolution:
        """
        Resolve ``source_url`` to a local asset, downloading it on a miss.

        Args:
            source_url: Absolute remote image URL
            title: Title given to a newly materialised asset

        Returns:
            ImageResolution with the asset id and whether it was sideloaded

        Raises:
            AssetError: If the URL is empty or the download/materialisation fails
        """
        if not source_url:
            raise AssetError("Image URL is empty", source_url=source_url)

        existing = self.find_local_asset(source_url)
        if existing is not None:
            log.debug("image_cache_hit", source_url=source_url, asset_id=existing)
            return ImageResolution(asset_id=existing, sideloaded=False)

        image = self._downloader.download(source_url)

        try:
            asset_id = self._catalog.create_asset(
                image.content,
                filename=image.filename,
                title=title or image.filename,
                content_type=image.content_type,
                meta={META_SOURCE_IMAGE_URL: source_url},
            )
        except CatalogError as e:
            raise AssetError(
                f"Failed to store image {source_url}: {e.message}", source_url=source_url
            ) from e

        log.info("image_sideloaded", source_url=source_url, asset_id=asset_id)
        return ImageResolution(asset_id=asset_id, sideloaded=True)
