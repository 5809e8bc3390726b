import json

import numpy as np
import pytest
import requests
from rasterio.io import MemoryFile
from rasterio.transform import from_origin

from geoenrich.models import BoundingBox
from geoenrich.projection import wgs84_to_utm32n


class FakeResponse:
    def __init__(self, status_code=200, payload=None, content=b"",
                 headers=None, text=None):
        self.status_code = status_code
        self._payload = payload
        if payload is not None:
            content = json.dumps(payload).encode()
        self.content = content
        self.headers = headers or {}
        self.text = text if text is not None else content.decode(
            "utf-8", errors="replace")

    @property
    def ok(self):
        return 200 <= self.status_code < 400

    def json(self):
        if self._payload is None:
            raise ValueError("not json")
        return self._payload


class FakeSession:
    """Replays queued responses; exceptions in the queue are raised."""

    def __init__(self, post=None, get=None):
        self.post_queue = list(post or [])
        self.get_queue = list(get or [])
        self.posts = []
        self.gets = []

    def _next(self, queue):
        item = queue.pop(0) if len(queue) > 1 else queue[0]
        if callable(item) and not isinstance(item, FakeResponse):
            item = item()
        if isinstance(item, Exception):
            raise item
        return item

    def post(self, url, params=None, json=None, timeout=None):
        self.posts.append({"url": url, "params": params, "json": json,
                           "timeout": timeout})
        return self._next(self.post_queue)

    def get(self, url, params=None, timeout=None):
        self.gets.append({"url": url, "params": params, "timeout": timeout})
        return self._next(self.get_queue)


def bbr_node(lat, lon, floors=None, wall=None, roof=None, use=None):
    e, n = wgs84_to_utm32n(lat, lon)
    return {
        "byg021BygningensAnvendelse": use,
        "byg032YdervaeggensMateriale": wall,
        "byg033Tagdaekningsmateriale": roof,
        "byg054AntalEtager": floors,
        "byg404Koordinat": {"wkt": f"POINT ({e:.3f} {n:.3f})"},
    }


def bbr_page(nodes, has_next=False, cursor=None):
    return FakeResponse(payload={"data": {"BBR_Bygning": {
        "nodes": nodes,
        "pageInfo": {"hasNextPage": has_next, "endCursor": cursor},
    }}})


def make_tiff(array, dtype="float32", nodata=None):
    array = np.asarray(array)
    height, width = array.shape
    with MemoryFile() as mem:
        with mem.open(driver="GTiff", width=width, height=height, count=1,
                      dtype=dtype, crs="EPSG:25832", nodata=nodata,
                      transform=from_origin(700000, 6170000, 1, 1)) as ds:
            ds.write(array.astype(dtype), 1)
        return mem.read()


def tiff_response(array, dtype="float32"):
    return FakeResponse(content=make_tiff(array, dtype),
                        headers={"content-type": "image/tiff"})


@pytest.fixture
def cph_bbox():
    return BoundingBox.from_edges(55.670, 12.560, 55.680, 12.580)


@pytest.fixture
def no_sleep():
    waits = []
    return waits, waits.append


@pytest.fixture
def connection_error():
    return requests.ConnectionError("connection reset")
