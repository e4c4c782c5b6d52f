"""Local and remote disk images that can be sized, sniffed and uploaded."""

from __future__ import annotations

import logging
import os
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from email.utils import formatdate
from typing import BinaryIO, Callable, Union
from urllib.parse import urlparse

import requests

from .volume_def import StorageVolume, time_from_epoch

logger = logging.getLogger(__name__)

QCOW2_MAGIC = b"QFI\xfb\x00\x00\x00\x03"

Copier = Callable[[BinaryIO], object]


class ImageError(Exception):
    """Raised when an image cannot be read, sniffed or downloaded."""


class Image(ABC):
    """A source of volume content, local or reachable over HTTP."""

    @abstractmethod
    def size(self) -> int:
        """Return the image size in bytes."""

    @abstractmethod
    def is_qcow2(self) -> bool:
        """Tell whether the image starts with a qcow2 header."""

    @abstractmethod
    def import_image(self, copier: Copier, volume: StorageVolume) -> None:
        """Feed the image content to ``copier`` unless ``volume`` is already current."""


def _volume_mtime(volume: StorageVolume) -> str:
    target = volume.target
    if target is None or target.timestamps is None:
        return ""
    return target.timestamps.mtime


@dataclass
class LocalImage(Image):
    """An image file on the local filesystem."""

    path: str

    def __str__(self) -> str:
        return self.path

    def size(self) -> int:
        try:
            return os.stat(self.path).st_size
        except OSError as err:
            raise ImageError(f"Error while reading {self.path}: {err}") from err

    def is_qcow2(self) -> bool:
        try:
            with open(self.path, "rb") as handle:
                header = handle.read(8)
        except OSError as err:
            raise ImageError(f"Error while opening {self.path}: {err}") from err
        if len(header) < 8:
            raise ImageError(f"Can't read header of {self.path}: got {len(header)} bytes")
        return is_qcow2_header(header)

    def import_image(self, copier: Copier, volume: StorageVolume) -> None:
        try:
            handle = open(self.path, "rb")
        except OSError as err:
            raise ImageError(f"Error while opening {self.path}: {err}") from err
        with handle:
            mtime = _volume_mtime(volume)
            # the upload can be skipped when the modification times match
            if mtime and os.fstat(handle.fileno()).st_mtime_ns == time_from_epoch(mtime):
                logger.info("Modification time is the same: skipping image copy")
                return
            copier(handle)


def _status(response: requests.Response) -> str:
    return f"{response.status_code} {response.reason}"


@dataclass
class HttpImage(Image):
    """An image served over HTTP or HTTPS."""

    url: str
    max_retries: int = 3
    retry_wait: float = 2.0

    def __str__(self) -> str:
        return self.url

    def size(self) -> int:
        try:
            response = requests.head(self.url, allow_redirects=True)
            if response.status_code == 403:
                # perhaps only HEAD is forbidden: try a GET without reading the body
                with requests.get(self.url, stream=True) as get_response:
                    response = get_response
        except requests.RequestException as err:
            raise ImageError(f"Error accessing remote resource: {self.url}: {err}") from err
        if response.status_code != 200:
            raise ImageError(
                f"Error accessing remote resource: {self.url} - {_status(response)}"
            )
        length = response.headers.get("Content-Length", "")
        if not (length.isascii() and length.isdigit()):
            raise ImageError(
                f'Error while getting Content-Length of "{self.url}": got {length}'
            )
        return int(length)

    def is_qcow2(self) -> bool:
        try:
            response = requests.get(self.url, headers={"Range": "bytes=0-7"})
        except requests.RequestException as err:
            raise ImageError(f"Error while reading {self.url}: {err}") from err
        if response.status_code != 206:
            raise ImageError(
                "Can't retrieve partial header of resource to determine file type: "
                f"{self.url} - {_status(response)}"
            )
        header = response.content
        if len(header) < 8:
            raise ImageError(
                "Can't retrieve read header of resource to determine file type: "
                f"{self.url} - {len(header)} bytes read"
            )
        return is_qcow2_header(header)

    def import_image(self, copier: Copier, volume: StorageVolume) -> None:
        headers = {}
        mtime = _volume_mtime(volume)
        if mtime:
            seconds = time_from_epoch(mtime) // 1_000_000_000
            headers["If-Modified-Since"] = formatdate(seconds, usegmt=True)

        status = ""
        for attempt in range(self.max_retries):
            try:
                response = requests.get(self.url, headers=headers, stream=True)
            except requests.RequestException as err:
                raise ImageError(f"Error while downloading {self.url}: {err}") from err
            with response:
                logger.debug("url resp status code %s (retry #%d)", _status(response), attempt)
                if response.status_code == 304:
                    return
                if response.status_code == 200:
                    response.raw.decode_content = True
                    copier(response.raw)
                    return
                status = _status(response)
                code = response.status_code
            if code < 500:
                break
            # a server-side problem: wait a little and try again
            time.sleep(self.retry_wait)
        raise ImageError(f"Error while downloading {self.url}: {status}")


def new_image(source: str) -> Union[LocalImage, HttpImage]:
    """Return the image for a URL or path: http(s) URLs are remote, others local."""
    try:
        parsed = urlparse(source)
    except ValueError as err:
        raise ImageError(f"Can't parse source '{source}' as url: {err}") from err
    if parsed.scheme.startswith("http"):
        return HttpImage(url=source)
    if parsed.scheme in ("file", ""):
        return LocalImage(path=parsed.path)
    raise ImageError(f"Don't know how to read from '{source}'")


def is_qcow2_header(buf: bytes) -> bool:
    """Tell whether ``buf`` starts with the qcow2 magic and version 3."""
    if len(buf) < 8:
        raise ImageError(f"Expected header of 8 bytes. Got {len(buf)}")
    return bytes(buf[:8]) == QCOW2_MAGIC