"""
Model file download.

Files are streamed into ``<name>.temp`` and renamed into place only when
complete, so an interrupted download never replaces a good file.
"""

import logging
import os
from pathlib import Path
from typing import Callable

import requests

from .errors import FetchError

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]

CHUNK_SIZE = 1 << 16


def fetch_remote_data_file(
    url: str,
    local_file: str | Path,
    force: bool = False,
    on_progress: ProgressCallback | None = None,
    timeout: float = 30.0,
) -> Path:
    """
    Download ``url`` to ``local_file`` unless it already exists.

    Args:
        url: remote file URL
        local_file: destination path
        force: download even if ``local_file`` exists
        on_progress: called with (downloaded_bytes, total_bytes); total is 0
            when the server sends no Content-Length
        timeout: connect/read timeout in seconds

    Returns:
        Path to the local file

    Raises:
        FetchError: non-200 status or transport failure
    """
    local_file = Path(local_file)
    if local_file.exists() and not force:
        return local_file

    local_file.parent.mkdir(parents=True, exist_ok=True)
    temp_file = local_file.with_name(local_file.name + ".temp")
    logger.info("Downloading %s -> %s", url, local_file)

    try:
        with requests.get(url, stream=True, timeout=timeout) as response:
            if response.status_code != 200:
                raise FetchError(f"Unexpected HTTP status: {response.status_code} for {url}")

            total_bytes = int(response.headers.get("Content-Length") or 0)
            downloaded = 0
            with open(temp_file, "wb") as f:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if not chunk:
                        continue
                    f.write(chunk)
                    downloaded += len(chunk)
                    if on_progress is not None:
                        on_progress(downloaded, total_bytes)

        os.replace(temp_file, local_file)
    except requests.RequestException as e:
        temp_file.unlink(missing_ok=True)
        raise FetchError(f"Download failed for {url}: {e}") from e
    except BaseException:
        temp_file.unlink(missing_ok=True)
        raise

    logger.info("Downloaded %s (%d bytes)", local_file.name, downloaded)
    return local_file
