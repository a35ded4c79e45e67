"""
Model download tests with a fake ``requests.get``.
"""

import pytest
import requests

from musicgen_stream import FetchError, fetch_remote_data_file
from musicgen_stream import fetch as fetch_module


class FakeResponse:
    def __init__(self, chunks, status_code=200, content_length=True, fail_after=None):
        self.chunks = chunks
        self.status_code = status_code
        self.headers = {}
        if content_length:
            self.headers["Content-Length"] = str(sum(len(c) for c in chunks))
        self.fail_after = fail_after
        self.closed = False

    def iter_content(self, chunk_size=1):
        for i, chunk in enumerate(self.chunks):
            if self.fail_after is not None and i >= self.fail_after:
                raise requests.ConnectionError("connection reset")
            yield chunk

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.closed = True


@pytest.fixture
def fake_get(monkeypatch):
    calls = []

    def install(response):
        def get(url, stream=False, timeout=None):
            calls.append((url, stream))
            return response
        monkeypatch.setattr(fetch_module.requests, "get", get)
        return calls

    return install


def test_download_reports_progress(tmp_path, fake_get):
    calls = fake_get(FakeResponse([b"abcd", b"efgh", b"ij"]))
    seen = []

    path = fetch_remote_data_file(
        "https://example.com/model.onnx",
        tmp_path / "models" / "model.onnx",
        on_progress=lambda done, total: seen.append((done, total)),
    )

    assert path.read_bytes() == b"abcdefghij"
    assert seen == [(4, 10), (8, 10), (10, 10)]
    assert calls == [("https://example.com/model.onnx", True)]
    assert not (tmp_path / "models" / "model.onnx.temp").exists()


def test_missing_content_length_reports_zero_total(tmp_path, fake_get):
    fake_get(FakeResponse([b"xy", b"z"], content_length=False))
    seen = []
    fetch_remote_data_file("https://example.com/f", tmp_path / "f", on_progress=lambda d, t: seen.append((d, t)))
    assert seen == [(2, 0), (3, 0)]


def test_existing_file_is_not_downloaded(tmp_path, fake_get):
    calls = fake_get(FakeResponse([b"new"]))
    local = tmp_path / "f"
    local.write_bytes(b"old")

    fetch_remote_data_file("https://example.com/f", local)

    assert local.read_bytes() == b"old"
    assert calls == []


def test_force_redownloads(tmp_path, fake_get):
    fake_get(FakeResponse([b"new"]))
    local = tmp_path / "f"
    local.write_bytes(b"old")

    fetch_remote_data_file("https://example.com/f", local, force=True)

    assert local.read_bytes() == b"new"


def test_non_200_status(tmp_path, fake_get):
    fake_get(FakeResponse([b"Not Found"], status_code=404))
    with pytest.raises(FetchError, match="404"):
        fetch_remote_data_file("https://example.com/missing", tmp_path / "f")
    assert list(tmp_path.iterdir()) == []


def test_interrupted_download_keeps_old_file(tmp_path, fake_get):
    fake_get(FakeResponse([b"part", b"ial"], fail_after=1))
    local = tmp_path / "f"
    local.write_bytes(b"good")

    with pytest.raises(FetchError, match="connection reset"):
        fetch_remote_data_file("https://example.com/f", local, force=True)

    assert local.read_bytes() == b"good"
    assert not (tmp_path / "f.temp").exists()
