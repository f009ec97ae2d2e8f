"""Shared fixtures: an in-memory blob source and a fake WebDAV server."""

import io
import re
import threading
import time
import uuid
from collections import Counter
from urllib.parse import urlsplit

import pytest
import requests
from requests.adapters import BaseAdapter
from requests.structures import CaseInsensitiveDict

from blob_mount.errors import ChunkLoadError
from blob_mount.node import Node
from blob_mount.vfs.file import BlobLoader


class MemoryBlobSource(BlobLoader):
    """Blob source over a dict, with failure injection and call counters."""

    def __init__(self, blobs=None, load_delay=0.0):
        self.blobs = dict(blobs or {})
        self.load_delay = load_delay
        self.fail_lookup = set()
        self.fail_load = set()
        self.size_calls = Counter()
        self.load_calls = Counter()
        self._lock = threading.Lock()

    def lookup_blob_size(self, blob_id, blob_type):
        self.size_calls[blob_id] += 1
        if blob_id in self.fail_lookup:
            raise KeyError(blob_id)
        return len(self.blobs[blob_id])

    def load_blob(self, blob_type, blob_id, buf):
        with self._lock:
            self.load_calls[blob_id] += 1
        if self.load_delay:
            time.sleep(self.load_delay)
        if blob_id in self.fail_load:
            raise IOError(f"disk error reading {blob_id}")
        data = self.blobs[blob_id][: len(buf)]
        buf[: len(data)] = data
        return len(data)


class StrictBlobSource(MemoryBlobSource):
    """Raises the engine's own ChunkLoadError instead of a foreign exception."""

    def load_blob(self, blob_type, blob_id, buf):
        if blob_id in self.fail_load:
            raise ChunkLoadError("pack file truncated", {"blob": blob_id})
        return super().load_blob(blob_type, blob_id, buf)


def make_file(chunks, declared_size=None, name="file.bin", **node_kwargs):
    """Build a blob source holding ``chunks`` and a Node referencing them in order."""
    blobs = {f"blob-{i}": data for i, data in enumerate(chunks)}
    node = Node(
        name=name,
        size=sum(len(c) for c in chunks) if declared_size is None else declared_size,
        mode=0o100644,
        content=list(blobs),
        **node_kwargs,
    )
    return MemoryBlobSource(blobs), node


@pytest.fixture
def unique_memory_url():
    """A fresh memory:// URL; the fsspec memory filesystem is process-global."""
    return f"memory://repo_{uuid.uuid4().hex[:12]}"


MULTISTATUS_TEMPLATE = (
    '<?xml version="1.0" encoding="utf-8"?>\n'
    '<D:multistatus xmlns:D="DAV:">{responses}</D:multistatus>'
)
RESPONSE_TEMPLATE = (
    "<D:response><D:href>{href}</D:href>"
    "<D:propstat><D:prop/><D:status>HTTP/1.1 200 OK</D:status></D:propstat>"
    "</D:response>"
)


def multistatus(*hrefs):
    return MULTISTATUS_TEMPLATE.format(
        responses="".join(RESPONSE_TEMPLATE.format(href=h) for h in hrefs)
    ).encode()


class FakeTransport(BaseAdapter):
    """requests transport adapter that answers from a handler function.

    The handler receives the PreparedRequest and returns
    ``(status, headers, body)``; ``body`` may be bytes or a file-like object.
    """

    def __init__(self, handler):
        super().__init__()
        self.handler = handler
        self.requests = []
        self.closed = False

    def send(self, request, stream=False, timeout=None, verify=True, cert=None, proxies=None):
        self.requests.append(request)
        status, headers, body = self.handler(request)
        resp = requests.Response()
        resp.status_code = status
        resp.headers = CaseInsensitiveDict(headers or {})
        resp.raw = body if hasattr(body, "read") else io.BytesIO(body or b"")
        resp.url = request.url
        resp.request = request
        resp.reason = "Fake"
        resp.encoding = None
        return resp

    def close(self):
        self.closed = True


class FakeDAVServer:
    """
    Minimal WebDAV server over a dict of path -> bytes.

    PROPFIND at ``Depth: 0`` reports only the collection itself. With
    ``lenient_depth`` it also lists the members, as some servers do.
    """

    def __init__(self, lenient_depth=False):
        self.objects = {}
        self.lenient_depth = lenient_depth

    def __call__(self, request):
        path = urlsplit(request.url).path
        method = request.method
        if method == "PUT":
            body = request.body or b""
            if isinstance(body, str):
                body = body.encode()
            self.objects[path] = bytes(body)
            return 201, {}, b""
        if method == "HEAD":
            if path not in self.objects:
                return 404, {}, b""
            return 200, {"Content-Length": str(len(self.objects[path]))}, b""
        if method == "GET":
            if path not in self.objects:
                return 404, {}, b""
            data = self.objects[path]
            rng = request.headers.get("Range")
            if not rng:
                return 200, {"Content-Length": str(len(data))}, data
            m = re.match(r"bytes=(\d+)-(\d*)$", rng)
            start = int(m.group(1))
            end = int(m.group(2)) if m.group(2) else len(data) - 1
            return 206, {}, data[start : end + 1]
        if method == "DELETE":
            if self.objects.pop(path, None) is None:
                return 404, {}, b""
            return 200, {}, b""
        if method == "PROPFIND":
            prefix = path if path.endswith("/") else path + "/"
            hrefs = [prefix]
            if self.lenient_depth or request.headers.get("Depth") != "0":
                hrefs += sorted(
                    p for p in self.objects if p.startswith(prefix) and "/" not in p[len(prefix):]
                )
            return 207, {"Content-Type": "application/xml"}, multistatus(*hrefs)
        return 405, {}, b""


@pytest.fixture
def dav_server():
    return FakeDAVServer()


@pytest.fixture
def dav_session(dav_server):
    """A requests.Session whose http(s) traffic goes to the fake DAV server."""
    transport = FakeTransport(dav_server)
    session = requests.Session()
    session.mount("http://", transport)
    session.mount("https://", transport)
    session.transport = transport
    return session
