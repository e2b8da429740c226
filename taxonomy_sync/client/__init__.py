"""HTTP clients used by the sync side: provider API transport and image downloads"""

from taxonomy_sync.client.downloader import DownloadedImage, ImageDownloader
from taxonomy_sync.client.transport import ProviderTransport

__all__ = ["DownloadedImage", "ImageDownloader", "ProviderTransport"]
