"""
File downloads for remote datasets.

Downloads are blocking and made once: a file already present at its local
path is reused without any freshness check, and nothing is retried.

Usage::

    from src.hydroterrain.downloads import fetch_if_missing, extract_archive

    archive = Path("data/rivers/rivers_data_downloaded.zip")
    if fetch_if_missing(url, archive):
        extract_archive(archive, archive.parent)
"""

import logging
import zipfile
from pathlib import Path
from typing import Optional

import requests
from tqdm import tqdm

from src.hydroterrain.errors import AcquisitionFailure

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 256


def download_file(url: str, dest: Path, timeout: float = 300, description: str = "") -> Path:
    """
    Stream a URL to a local file.

    A partially written file is removed when the transfer fails.

    Args:
        url: Remote file URL
        dest: Local destination path (parent directories are created)
        timeout: Request timeout in seconds
        description: Label for the progress bar (default: file name)

    Returns:
        Path to the downloaded file

    Raises:
        requests.exceptions.RequestException: If the request fails
    """
    dest = Path(dest)
    dest.parent.mkdir(parents=True, exist_ok=True)
    label = description or dest.name

    logger.info(f"Downloading {label} from {url}")
    try:
        with requests.get(url, stream=True, timeout=timeout) as response:
            response.raise_for_status()
            total = int(response.headers.get("content-length", 0))
            with open(dest, "wb") as fh, tqdm(
                total=total or None, unit="B", unit_scale=True, desc=label, leave=False
            ) as pbar:
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    fh.write(chunk)
                    pbar.update(len(chunk))
    except requests.exceptions.RequestException:
        if dest.exists():
            dest.unlink()
        raise

    logger.info(f"Saved {dest.name} ({dest.stat().st_size / (1024 * 1024):.1f} MB)")
    return dest


def fetch_if_missing(url: str, dest: Path, timeout: float = 300) -> bool:
    """
    Download url to dest unless dest already exists.

    Returns:
        True if a download happened, False if the local file was reused
    """
    dest = Path(dest)
    if dest.exists():
        logger.info(f"{dest.name} already exists, download skipped")
        return False

    download_file(url, dest, timeout=timeout)
    return True


def extract_archive(archive: Path, dest_dir: Path) -> Path:
    """Unzip archive into dest_dir, creating it if needed."""
    dest_dir = Path(dest_dir)
    dest_dir.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(archive, "r") as zf:
        zf.extractall(dest_dir)
    logger.info(f"Extracted {Path(archive).name} to {dest_dir}")
    return dest_dir


def ensure_environment_light(url: Optional[str], directory: Path, timeout: float = 300) -> Optional[Path]:
    """
    Fetch the HDR environment texture used by the high quality renderer.

    Args:
        url: HDR file URL, or None to skip
        directory: Directory where the file is kept

    Returns:
        Local path of the HDR file, or None when no URL is configured

    Raises:
        AcquisitionFailure: If the download fails
    """
    if url is None:
        return None

    hdr_path = Path(directory) / Path(url).name
    try:
        fetch_if_missing(url, hdr_path, timeout=timeout)
    except (requests.exceptions.RequestException, OSError) as e:
        raise AcquisitionFailure(f"Failed to obtain environment light {hdr_path.name}: {e}") from e
    return hdr_path
