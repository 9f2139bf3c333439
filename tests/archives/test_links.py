"""
Tests for share link resolution.
"""

import pytest

from archives.links import (
    UnrecognizedLinkError,
    confirm_url,
    find_confirm_cookie,
    is_google_drive,
    resolve_download_url,
)


class TestResolveDownloadUrl:
    """Tests for resolve_download_url."""

    def test_google_open_link(self):
        url = resolve_download_url("https://drive.google.com/open?id=XYZ")
        assert url == "https://drive.google.com/u/0/uc?id=XYZ&export=download"

    def test_google_file_link(self):
        url = resolve_download_url("https://drive.google.com/file/d/XYZ/view?usp=sharing")
        assert url == "https://drive.google.com/u/0/uc?id=XYZ&export=download"

    @pytest.mark.parametrize(
        "url",
        [
            "https://drive.google.com/open",
            "https://drive.google.com/drive/folders",
        ],
    )
    def test_google_link_without_id(self, url):
        with pytest.raises(UnrecognizedLinkError):
            resolve_download_url(url)

    def test_dropbox_host_rewritten(self):
        url = resolve_download_url("https://www.dropbox.com/s/abc/archive.zip?dl=0")
        assert url == "https://dl.dropboxusercontent.com/s/abc/archive.zip?dl=0"

    def test_other_hosts_unchanged(self):
        url = "https://example.com/archive.zip"
        assert resolve_download_url(url) == url

    def test_is_google_drive(self):
        assert is_google_drive("https://drive.google.com/open?id=1")
        assert not is_google_drive("https://www.dropbox.com/s/1")


class TestConfirmCookie:
    """Tests for the large-file confirmation cookie."""

    def test_finds_download_warning_cookie(self):
        cookies = {"NID": "1", "download_warning_13058876669334088843_XYZ": "t0k3n"}
        assert find_confirm_cookie(cookies) == ("download_warning_13058876669334088843_XYZ", "t0k3n")

    def test_no_cookie(self):
        assert find_confirm_cookie({"NID": "1"}) is None

    def test_confirm_url(self):
        base = "https://drive.google.com/u/0/uc?id=XYZ&export=download"
        assert confirm_url(base, "abc") == base + "&confirm=abc"
