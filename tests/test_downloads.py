"""
Tests for remote file downloads.

requests.get is mocked throughout; nothing touches the network.
"""

import zipfile

import pytest
from unittest.mock import MagicMock, patch

import requests


def _streaming_response(chunks, fail=False):
    response = MagicMock()
    response.__enter__.return_value = response
    response.headers = {"content-length": str(sum(len(c) for c in chunks))}
    response.iter_content.return_value = iter(chunks)
    if fail:
        response.raise_for_status.side_effect = requests.exceptions.HTTPError("404")
    return response


class TestDownloadFile:
    """Tests for download_file."""

    def test_writes_streamed_content(self, tmp_path):
        from src.hydroterrain.downloads import download_file

        dest = tmp_path / "nested" / "file.bin"

        with patch("src.hydroterrain.downloads.requests.get", return_value=_streaming_response([b"abc", b"def"])):
            result = download_file("https://example.com/file.bin", dest)

        assert result == dest
        assert dest.read_bytes() == b"abcdef"

    def test_http_error_propagates_and_leaves_no_file(self, tmp_path):
        from src.hydroterrain.downloads import download_file

        dest = tmp_path / "file.bin"

        with patch("src.hydroterrain.downloads.requests.get", return_value=_streaming_response([], fail=True)):
            with pytest.raises(requests.exceptions.HTTPError):
                download_file("https://example.com/file.bin", dest)

        assert not dest.exists()

    def test_interrupted_transfer_removes_partial_file(self, tmp_path):
        from src.hydroterrain.downloads import download_file

        dest = tmp_path / "file.bin"
        response = _streaming_response([b"abc"])

        def broken_stream(chunk_size):
            yield b"abc"
            raise requests.exceptions.ChunkedEncodingError("connection reset")

        response.iter_content.side_effect = broken_stream

        with patch("src.hydroterrain.downloads.requests.get", return_value=response):
            with pytest.raises(requests.exceptions.ChunkedEncodingError):
                download_file("https://example.com/file.bin", dest)

        assert not dest.exists()


class TestFetchIfMissing:
    """Tests for fetch_if_missing."""

    def test_existing_file_is_reused(self, tmp_path):
        from src.hydroterrain.downloads import fetch_if_missing

        dest = tmp_path / "archive.zip"
        dest.write_bytes(b"old")

        with patch("src.hydroterrain.downloads.requests.get") as mock_get:
            downloaded = fetch_if_missing("https://example.com/archive.zip", dest)

        assert downloaded is False
        mock_get.assert_not_called()
        assert dest.read_bytes() == b"old"

    def test_missing_file_is_downloaded(self, tmp_path):
        from src.hydroterrain.downloads import fetch_if_missing

        dest = tmp_path / "archive.zip"

        with patch("src.hydroterrain.downloads.requests.get", return_value=_streaming_response([b"new"])):
            downloaded = fetch_if_missing("https://example.com/archive.zip", dest)

        assert downloaded is True
        assert dest.read_bytes() == b"new"


class TestArchivesAndAssets:
    """Tests for extract_archive and ensure_environment_light."""

    def test_extract_archive(self, tmp_path):
        from src.hydroterrain.downloads import extract_archive

        archive = tmp_path / "data.zip"
        with zipfile.ZipFile(archive, "w") as zf:
            zf.writestr("inner/readme.txt", "hello")

        extract_archive(archive, tmp_path / "out")

        assert (tmp_path / "out" / "inner" / "readme.txt").read_text() == "hello"

    def test_environment_light_skipped_without_url(self, tmp_path):
        from src.hydroterrain.downloads import ensure_environment_light

        assert ensure_environment_light(None, tmp_path) is None

    def test_environment_light_reused_when_present(self, tmp_path):
        from src.hydroterrain.downloads import ensure_environment_light

        (tmp_path / "studio.hdr").write_bytes(b"hdr")

        with patch("src.hydroterrain.downloads.requests.get") as mock_get:
            path = ensure_environment_light("https://example.com/hdr/studio.hdr", tmp_path)

        mock_get.assert_not_called()
        assert path == tmp_path / "studio.hdr"

    def test_environment_light_download_failure_raises_acquisition_failure(self, tmp_path):
        from src.hydroterrain.downloads import ensure_environment_light
        from src.hydroterrain.errors import AcquisitionFailure, HydroTerrainError

        with patch(
            "src.hydroterrain.downloads.requests.get",
            side_effect=requests.exceptions.ConnectionError("down"),
        ):
            with pytest.raises(AcquisitionFailure) as excinfo:
                ensure_environment_light("https://example.com/hdr/studio.hdr", tmp_path)

        assert isinstance(excinfo.value, HydroTerrainError)
        assert isinstance(excinfo.value.__cause__, requests.exceptions.ConnectionError)
        assert not (tmp_path / "studio.hdr").exists()
