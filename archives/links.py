"""
Archives - Share Link Resolution.

Provider share links are rewritten to direct-download links:

- drive.google.com/open?id=<id> and drive.google.com/file/d/<id>/...
  become https://drive.google.com/u/0/uc?id=<id>&export=download
- www.dropbox.com becomes dl.dropboxusercontent.com

Large Google Drive files answer with an HTML virus-scan page; the
download is replayed with the token of the `download_warning`
cookie appended as `&confirm=`.
"""

from typing import Mapping, Optional, Tuple
from urllib.parse import parse_qs, urlparse, urlunparse


GOOGLE_DRIVE_HOST = "drive.google.com"
DROPBOX_HOST = "www.dropbox.com"
DROPBOX_DIRECT_HOST = "dl.dropboxusercontent.com"

GOOGLE_DIRECT_URL = "https://drive.google.com/u/0/uc?id={file_id}&export=download"

DOWNLOAD_WARNING_COOKIE = "download_warning"


class UnrecognizedLinkError(ValueError):
    """A share link of a known provider could not be resolved."""


def is_google_drive(url: str) -> bool:
    return urlparse(url).netloc == GOOGLE_DRIVE_HOST


def resolve_download_url(url: str) -> str:
    """
    Direct-download URL of a share link.

    Links of other hosts are returned unchanged.

    Raises:
        UnrecognizedLinkError: If a Google Drive link carries no file id
    """
    parsed = urlparse(url)

    if parsed.netloc == GOOGLE_DRIVE_HOST:
        file_id = ""
        if parsed.path == "/open":
            file_id = (parse_qs(parsed.query).get("id") or [""])[0]
        else:
            # /file/d/<id>/view
            segments = parsed.path.split("/")
            if len(segments) >= 4:
                file_id = segments[3]
        if not file_id:
            raise UnrecognizedLinkError(f"unrecognized link of google sharing: {url}")
        return GOOGLE_DIRECT_URL.format(file_id=file_id)

    if parsed.netloc == DROPBOX_HOST:
        return urlunparse(parsed._replace(netloc=DROPBOX_DIRECT_HOST))

    return url


def find_confirm_cookie(cookies: Mapping[str, str]) -> Optional[Tuple[str, str]]:
    """(name, value) of the first cookie whose name contains `download_warning`."""
    for name, value in cookies.items():
        if DOWNLOAD_WARNING_COOKIE in name:
            return name, value
    return None


def confirm_url(url: str, token: str) -> str:
    return f"{url}&confirm={token}"


__all__ = [
    "UnrecognizedLinkError",
    "is_google_drive",
    "resolve_download_url",
    "find_confirm_cookie",
    "confirm_url",
]
