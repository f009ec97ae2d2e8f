"""Backend speaking WebDAV over HTTP."""

from __future__ import annotations

import logging
import threading
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Iterator, List, Optional
from urllib.parse import urlsplit, urlunsplit

import requests

from blob_mount.backend.base import (
    Backend,
    FileInfo,
    FileType,
    Handle,
    collection_path,
    object_path,
    resolve_offset,
)
from blob_mount.config import DEFAULT_CONN_LIMIT
from blob_mount.errors import RemoteProtocolError, SizeMismatchError

logger = logging.getLogger(__name__)

PREFIX = "webdav:"
DAV_NS = "{DAV:}"


@dataclass(frozen=True)
class WebDAVConfig:
    url: str


def parse_config(s: str) -> WebDAVConfig:
    """
    Parse a ``webdav:<url>`` backend specification.

    Raises:
        ValueError: If the prefix is missing or the URL has no scheme/host.
    """
    if not s.startswith(PREFIX):
        raise ValueError("invalid WebDAV backend specification")
    url = s[len(PREFIX):]
    parts = urlsplit(url)
    if not parts.scheme or not parts.netloc:
        raise ValueError(f"invalid WebDAV URL: {url!r}")
    return WebDAVConfig(url=url)


def parse_multistatus(body: bytes) -> List[str]:
    """
    Extract the ``href`` of every ``response`` in a multistatus document.

    Raises:
        RemoteProtocolError: If the body is not a DAV multistatus document.
    """
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise RemoteProtocolError(f"malformed multistatus document: {e}") from e
    if root.tag != f"{DAV_NS}multistatus":
        raise RemoteProtocolError(
            "unexpected document root", {"tag": root.tag}
        )
    hrefs = []
    for response in root.findall(f"{DAV_NS}response"):
        href = response.find(f"{DAV_NS}href")
        if href is not None and href.text:
            hrefs.append(href.text.strip())
    return hrefs


class WebDAVBackend(Backend):
    """
    Stores repository objects on a WebDAV server.

    At most ``conn_limit`` requests are outstanding at once. A permit is held
    only until the response headers arrive; bodies are read after it is
    returned.
    """

    def __init__(
        self,
        cfg: WebDAVConfig,
        session: Optional[requests.Session] = None,
        conn_limit: int = DEFAULT_CONN_LIMIT,
        timeout: Optional[float] = 60,
    ):
        parts = urlsplit(cfg.url)
        self.url = cfg.url
        self._base = urlunsplit((parts.scheme, parts.netloc, "", "", ""))
        self._base_path = parts.path or "/"
        self._session = session or requests.Session()
        self._permits = threading.BoundedSemaphore(conn_limit)
        self._timeout = timeout

    def location(self) -> str:
        return self.url

    def _url(self, handle: Handle) -> str:
        handle.validate()
        return self._base + object_path(self._base_path, handle)

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        with self._permits:
            try:
                return self._session.request(
                    method, url, stream=True, timeout=self._timeout, **kwargs
                )
            except requests.RequestException as e:
                raise RemoteProtocolError(
                    f"{method} request failed: {e}", {"url": url}
                ) from e

    @staticmethod
    def _body(resp: requests.Response, url: str) -> bytes:
        # the body is streamed after the permit is returned
        try:
            return resp.content
        except requests.RequestException as e:
            raise RemoteProtocolError(
                f"reading response body failed: {e}", {"url": url}
            ) from e

    def load(self, handle: Handle, length: Optional[int] = None, offset: int = 0) -> bytes:
        url = self._url(handle)
        if offset < 0:
            offset = resolve_offset(offset, self.stat(handle).size)

        headers = {}
        if length is not None:
            if length <= 0:
                return b""
            headers["Range"] = f"bytes={offset}-{offset + length - 1}"
        elif offset > 0:
            headers["Range"] = f"bytes={offset}-"

        logger.debug("GET %s range=%s", url, headers.get("Range"))
        resp = self._request("GET", url, headers=headers)
        with resp:
            if resp.status_code not in (200, 206):
                raise RemoteProtocolError(
                    "Load: unexpected HTTP response code",
                    {"status_code": resp.status_code, "url": url},
                )
            data = self._body(resp, url)

        # server ignored the range and sent the whole object
        if resp.status_code == 200 and headers:
            data = data[offset:]
        if length is not None:
            data = data[:length]
        return data

    def save(self, handle: Handle, data: bytes) -> None:
        url = self._url(handle)
        logger.debug("PUT %s (%d bytes)", url, len(data))
        resp = self._request("PUT", url, data=data, headers={"Translate": "f"})
        with resp:
            if resp.status_code != 201:
                raise RemoteProtocolError(
                    "Save: unexpected HTTP response code",
                    {"status_code": resp.status_code, "url": url},
                )

    def stat(self, handle: Handle) -> FileInfo:
        url = self._url(handle)
        resp = self._request("HEAD", url)
        with resp:
            if resp.status_code != 200:
                raise RemoteProtocolError(
                    "Stat: unexpected HTTP response code",
                    {"status_code": resp.status_code, "url": url},
                )
            raw_length = resp.headers.get("Content-Length")

        if raw_length is None:
            raise RemoteProtocolError("Stat: missing content length", {"url": url})
        try:
            size = int(raw_length)
        except ValueError:
            raise RemoteProtocolError(
                "Stat: malformed content length", {"url": url, "length": raw_length}
            ) from None
        if size < 0:
            raise SizeMismatchError("negative content length", {"url": url, "length": size})
        return FileInfo(size=size)

    def test(self, file_type: FileType, name: str) -> bool:
        try:
            self.stat(Handle(file_type, name))
        except Exception as e:
            logger.debug("Test(%s, %s): %s", FileType(file_type).value, name, e)
            return False
        return True

    def remove(self, file_type: FileType, name: str) -> None:
        url = self._url(Handle(file_type, name))
        logger.debug("DELETE %s", url)
        resp = self._request("DELETE", url)
        with resp:
            if resp.status_code != 200:
                raise RemoteProtocolError(
                    "blob not removed", {"status_code": resp.status_code, "url": url}
                )

    def list(
        self, file_type: FileType, done: Optional[threading.Event] = None
    ) -> Iterator[str]:
        url = self._base + collection_path(self._base_path, file_type)
        try:
            resp = self._request("PROPFIND", url, headers={"Depth": "0"})
            with resp:
                if resp.status_code not in (200, 207):
                    raise RemoteProtocolError(
                        "List: unexpected HTTP response code",
                        {"status_code": resp.status_code, "url": url},
                    )
                hrefs = parse_multistatus(self._body(resp, url))
        except RemoteProtocolError as e:
            logger.warning("List(%s) failed: %s", FileType(file_type).value, e)
            return iter(())
        return self._emit(hrefs, done)

    @staticmethod
    def _emit(hrefs: List[str], done: Optional[threading.Event]) -> Iterator[str]:
        for href in hrefs:
            if done is not None and done.is_set():
                return
            yield href

    def close(self) -> None:
        self._session.close()
