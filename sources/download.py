"""Asset downloads."""

import logging
import time
from pathlib import Path

import httpx

from sources.base import DownloadError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 65536


def download_file(
    client: httpx.Client,
    url: str,
    target_path: Path,
    headers: dict[str, str] | None = None,
) -> Path:
    """Stream ``url`` into ``target_path``.

    The body is written to a ``.tmp`` sibling first and renamed once
    complete, so an interrupted download never leaves a truncated ``.vsix``.

    Args:
        client: HTTP client.
        url: Asset URL.
        target_path: Final file path.
        headers: Extra request headers (authentication, accept).

    Returns:
        The target path.

    Raises:
        DownloadError: If the request fails.
    """
    target_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = target_path.with_suffix(target_path.suffix + ".tmp")

    logger.debug("Downloading %s", url)
    start_time = time.monotonic()
    downloaded = 0

    try:
        with client.stream("GET", url, headers=headers) as response:
            response.raise_for_status()
            with open(temp_path, "wb") as f:
                for chunk in response.iter_bytes(CHUNK_SIZE):
                    f.write(chunk)
                    downloaded += len(chunk)
        temp_path.replace(target_path)
    except httpx.HTTPStatusError as e:
        raise DownloadError(f"Download failed ({e.response.status_code}): {url}") from e
    except httpx.HTTPError as e:
        raise DownloadError(f"Download failed: {e}") from e
    except OSError as e:
        raise DownloadError(f"Cannot write {target_path}: {e}") from e
    finally:
        if temp_path.exists():
            try:
                temp_path.unlink()
            except OSError as e:
                logger.warning("Failed to clean up temporary file %s: %s", temp_path, e)

    logger.info(
        "Downloaded %s (%.1f KB in %.2fs)",
        target_path.name,
        downloaded / 1024,
        time.monotonic() - start_time,
    )
    return target_path
