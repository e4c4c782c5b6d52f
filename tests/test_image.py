import os
import threading
import time
from contextlib import contextmanager
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from virtprov.image import (
    HttpImage,
    ImageError,
    LocalImage,
    is_qcow2_header,
    new_image,
)
from virtprov.net import FileWebServer
from virtprov.volume_def import VolumeTimestamps, new_def_volume

QCOW2_CONTENT = b"QFI\xfb\x00\x00\x00\x03" + b"\x00" * 56
CONTENT = b"this is a qcow image... well, it is not"


@contextmanager
def serve(content, errors=(), head_status=200):
    pending = list(errors)

    class Handler(BaseHTTPRequestHandler):
        def log_message(self, format, *args):  # noqa: A002
            pass

        def _reply(self, status, body, send_body=True):
            self.send_response(status)
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            if send_body:
                self.wfile.write(body)

        def do_HEAD(self):
            if head_status != 200:
                self._reply(head_status, b"", send_body=False)
            else:
                self._reply(200, content, send_body=False)

        def do_GET(self):
            if pending:
                self._reply(pending.pop(0), b"error")
                return
            if self.headers.get("Range") == "bytes=0-7":
                self._reply(206, content[:8])
                return
            self._reply(200, content)

    server = ThreadingHTTPServer(("127.0.0.1", 0), Handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}/content"
    finally:
        server.shutdown()
        server.server_close()
        thread.join()


def _mtime_string(path):
    ns = os.stat(path).st_mtime_ns
    return f"{ns // 1_000_000_000}.{ns % 1_000_000_000}"


def test_is_qcow2_header_true():
    assert is_qcow2_header(QCOW2_CONTENT) is True


def test_is_qcow2_header_false():
    assert is_qcow2_header(b"QFI\xfb\x00\x00\x00\x02") is False


def test_is_qcow2_header_short_raises():
    with pytest.raises(ImageError):
        is_qcow2_header(b"QFI")


def test_new_image_file_url(tmp_path):
    path = tmp_path / "disk.img"
    image = new_image(f"file://{path}")
    assert image == LocalImage(path=str(path))
    assert str(image) == str(path)


def test_new_image_plain_path():
    assert new_image("/var/lib/disk.img") == LocalImage(path="/var/lib/disk.img")


def test_new_image_http():
    image = new_image("http://127.0.0.1:8080/disk.img")
    assert isinstance(image, HttpImage)
    assert str(image) == "http://127.0.0.1:8080/disk.img"


def test_new_image_unknown_scheme():
    with pytest.raises(ImageError):
        new_image("ftp://example.com/disk.img")


def test_local_image_determine_type(tmp_path):
    path = tmp_path / "test.qcow2"
    path.write_bytes(QCOW2_CONTENT)
    assert new_image(f"file://{path}").is_qcow2() is True


def test_local_image_not_qcow2(tmp_path):
    path = tmp_path / "raw.img"
    path.write_bytes(CONTENT)
    assert new_image(str(path)).is_qcow2() is False


def test_local_image_short_header_raises(tmp_path):
    path = tmp_path / "tiny.img"
    path.write_bytes(b"QF")
    with pytest.raises(ImageError):
        LocalImage(str(path)).is_qcow2()


def test_local_image_missing_raises(tmp_path):
    image = LocalImage(str(tmp_path / "missing.img"))
    with pytest.raises(ImageError):
        image.is_qcow2()
    with pytest.raises(ImageError):
        image.size()


def test_local_image_size(tmp_path):
    path = tmp_path / "disk.img"
    path.write_bytes(CONTENT)
    assert LocalImage(str(path)).size() == len(CONTENT)


def test_local_image_download_skipped_when_same_mtime(tmp_path):
    path = tmp_path / "test-image"
    path.write_bytes(CONTENT)
    image = new_image(f"file://{path}")
    volume = new_def_volume()
    volume.target.timestamps = VolumeTimestamps(mtime=_mtime_string(path))
    copied = []
    image.import_image(lambda reader: copied.append(reader.read()), volume)
    assert copied == []


def test_local_image_download_copies_when_mtime_differs(tmp_path):
    path = tmp_path / "test-image"
    path.write_bytes(CONTENT)
    volume = new_def_volume()
    volume.target.timestamps = VolumeTimestamps(mtime="1.0")
    copied = []
    LocalImage(str(path)).import_image(lambda reader: copied.append(reader.read()), volume)
    assert copied == [CONTENT]


def test_remote_image_determine_type():
    with serve(QCOW2_CONTENT) as url:
        assert new_image(url).is_qcow2() is True


def test_remote_image_without_range_support_raises():
    with serve(QCOW2_CONTENT, errors=[200]) as url:
        with pytest.raises(ImageError):
            new_image(url).is_qcow2()


def test_remote_image_size():
    with serve(CONTENT) as url:
        assert new_image(url).size() == len(CONTENT)


def test_remote_image_size_falls_back_to_get_on_forbidden_head():
    with serve(CONTENT, head_status=403) as url:
        assert new_image(url).size() == len(CONTENT)


def test_remote_image_size_error_status():
    with serve(CONTENT, head_status=404) as url:
        with pytest.raises(ImageError):
            new_image(url).size()


def test_remote_image_download_retry():
    copied = []
    with serve(CONTENT, errors=[503, 503]) as url:
        image = new_image(url)
        image.retry_wait = 0.2
        start = time.monotonic()
        image.import_image(lambda reader: copied.append(reader.read()), new_def_volume())
        elapsed = time.monotonic() - start
    assert copied == [CONTENT]
    assert elapsed >= 0.4


def test_remote_image_download_client_error_stops_retrying():
    copied = []
    with serve(CONTENT, errors=[503, 404]) as url:
        image = new_image(url)
        image.retry_wait = 0.2
        start = time.monotonic()
        with pytest.raises(ImageError):
            image.import_image(lambda reader: copied.append(reader.read()), new_def_volume())
        elapsed = time.monotonic() - start
    assert copied == []
    assert elapsed >= 0.2


def test_remote_image_download_skipped_when_not_modified():
    copied = []
    with FileWebServer() as server:
        url, path = server.add_content(CONTENT)
        volume = new_def_volume()
        volume.target.timestamps = VolumeTimestamps(mtime=_mtime_string(path))
        new_image(url).import_image(lambda reader: copied.append(reader.read()), volume)
    assert copied == []


def test_remote_image_download_copies_content():
    copied = []
    with FileWebServer() as server:
        url, _ = server.add_content(CONTENT)
        new_image(url).import_image(lambda reader: copied.append(reader.read()), new_def_volume())
    assert copied == [CONTENT]