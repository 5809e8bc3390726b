import numpy as np
import pytest

from conftest import FakeResponse, FakeSession, make_tiff, tiff_response
from geoenrich.constants import MAX_Y, TERRAIN_HEIGHT_BUFFER
from geoenrich.errors import DecodeError, NetworkError, ProtocolError, SizeError
from geoenrich.models import BoundingBox
from geoenrich.terrain import (
    blur_sigma, check_payload, coverage_params, decode_raster,
    download_coverage, fetch_elevation_grid, gaussian_blur, gaussian_kernel,
    grid_dimensions, resample_nearest, to_renderer_heights,
)


# ── Sizing ──────────────────────────────────────────────────────────────

def test_grid_dimensions_follow_geodesic_extent(cph_bbox):
    width, height = grid_dimensions(cph_bbox, 1.0)
    # 0.01° of latitude ~ 1113 m, 0.02° of longitude at 55.7°N ~ 1257 m
    assert 1105 <= height <= 1120
    assert 1245 <= width <= 1265

    w2, h2 = grid_dimensions(cph_bbox, 0.5)
    assert abs(w2 - width / 2) <= 1
    assert abs(h2 - height / 2) <= 1


def test_zero_sized_grid_is_rejected(cph_bbox):
    with pytest.raises(SizeError):
        grid_dimensions(cph_bbox, 0.0)
    tiny = BoundingBox.from_edges(55.0, 12.0, 55.000001, 12.000001)
    with pytest.raises(SizeError):
        grid_dimensions(tiny, 1.0)


def test_coverage_params(cph_bbox):
    params = coverage_params(cph_bbox, 2048, 1113, "tok")
    assert params["COVERAGE"] == "dhm_terraen"
    assert params["CRS"] == params["RESPONSE_CRS"] == "EPSG:25832"
    assert params["FORMAT"] == "GTiff"
    assert params["WIDTH"] == "2048" and params["HEIGHT"] == "1113"
    assert params["token"] == "tok"
    min_e, min_n, max_e, max_n = map(float, params["BBOX"].split(","))
    assert min_e < max_e and min_n < max_n


# ── Download / retry ────────────────────────────────────────────────────

def test_retries_server_errors_then_succeeds(no_sleep):
    waits, sleep = no_sleep
    session = FakeSession(get=[
        FakeResponse(status_code=503, content=b"busy"),
        FakeResponse(status_code=429, content=b"slow down"),
        FakeResponse(content=b"II*\x00data",
                     headers={"content-type": "image/tiff"}),
    ])
    ctype, body = download_coverage(session, "https://dhm.test", {}, sleep=sleep)
    assert ctype == "image/tiff"
    assert body == b"II*\x00data"
    assert waits == [2.0, 4.0]
    assert len(session.gets) == 3


def test_transport_errors_are_retried(no_sleep, connection_error):
    waits, sleep = no_sleep
    session = FakeSession(get=[connection_error,
                               FakeResponse(content=b"II*\x00")])
    download_coverage(session, "https://dhm.test", {}, sleep=sleep)
    assert waits == [2.0]


def test_client_error_fails_immediately(no_sleep):
    waits, sleep = no_sleep
    session = FakeSession(get=[FakeResponse(status_code=403,
                                            content=b"bad token")])
    with pytest.raises(ProtocolError, match="403") as info:
        download_coverage(session, "https://dhm.test", {}, sleep=sleep)
    assert info.value.status_code == 403
    assert len(session.gets) == 1
    assert waits == []


def test_exhausted_retries(no_sleep):
    waits, sleep = no_sleep
    session = FakeSession(get=[FakeResponse(status_code=502,
                                            content=b"gateway")])
    with pytest.raises(NetworkError, match="502"):
        download_coverage(session, "https://dhm.test", {}, sleep=sleep)
    assert len(session.gets) == 15
    assert waits.count(60.0) == 4


def test_error_body_is_truncated(no_sleep):
    waits, sleep = no_sleep
    session = FakeSession(get=[FakeResponse(status_code=400,
                                            content=b"x" * 5000)])
    with pytest.raises(ProtocolError) as info:
        download_coverage(session, "https://dhm.test", {}, sleep=sleep)
    assert len(str(info.value)) < 600


@pytest.mark.parametrize("ctype,body", [
    ("application/vnd.ogc.se_xml", b"II*\x00"),
    ("text/xml; charset=utf-8", b"whatever"),
    ("image/tiff", b"<?xml version='1.0'?><ServiceException/>"),
    ("", b"<ServiceExceptionReport>"),
])
def test_xml_error_payload_detected(ctype, body):
    with pytest.raises(ProtocolError, match="returned error"):
        check_payload(ctype, body)


def test_binary_payload_accepted():
    check_payload("image/tiff", make_tiff(np.zeros((2, 2))))


# ── Decoding ────────────────────────────────────────────────────────────

@pytest.mark.parametrize("dtype", [
    "float32", "float64", "uint8", "int8", "uint16", "int16",
])
def test_decode_supported_dtypes(dtype):
    src = np.array([[1, 2, 3], [4, 5, 6]])
    band, _ = decode_raster(make_tiff(src, dtype))
    assert band.dtype == np.float64
    np.testing.assert_array_equal(band, src)


def test_decode_unsupported_dtype():
    with pytest.raises(DecodeError, match="Unsupported"):
        decode_raster(make_tiff(np.ones((2, 2)), "int32"))


def test_decode_garbage():
    with pytest.raises(DecodeError):
        decode_raster(b"definitely not a raster")


def test_decode_empty_payload():
    with pytest.raises(DecodeError, match="empty"):
        decode_raster(b"")


def test_decode_reports_nodata():
    _, nodata = decode_raster(make_tiff(np.ones((2, 2)), nodata=-3.0))
    assert nodata == -3.0


# ── Resampling / smoothing ──────────────────────────────────────────────

def test_resample_same_size_is_identity():
    rng = np.random.default_rng(7)
    src = rng.uniform(0, 50, size=(37, 53))
    out = resample_nearest(src, 53, 37)
    np.testing.assert_array_equal(out, src)


def test_resample_picks_proportional_source_pixel():
    src = np.arange(16, dtype=float).reshape(4, 4)
    out = resample_nearest(src, 2, 2)
    np.testing.assert_array_equal(out, [[0, 2], [8, 10]])


def test_resample_upsamples_by_repetition():
    src = np.array([[1.0, 2.0]])
    out = resample_nearest(src, 4, 2)
    np.testing.assert_array_equal(out, [[1, 1, 2, 2], [1, 1, 2, 2]])


def test_resample_maps_nodata_to_sea_level():
    src = np.array([[-9999.0, 5.0], [np.nan, -32768.0], [7.0, -3.0]])
    out = resample_nearest(src, 2, 3, nodata=-3.0)
    np.testing.assert_array_equal(out, [[0, 5], [0, 0], [7, 0]])


def test_kernel_radius_and_normalisation():
    assert len(gaussian_kernel(1.0)) == 7
    assert len(gaussian_kernel(1.2)) == 9
    k = gaussian_kernel(2.5)
    assert k.sum() == pytest.approx(1.0)
    np.testing.assert_allclose(k, k[::-1])


def test_blur_sigma_scales_with_grid():
    assert blur_sigma(100, 400) == pytest.approx(7.0)
    assert blur_sigma(400, 900) == pytest.approx(14.0)
    assert blur_sigma(0, 0) == pytest.approx(0.7)


def test_blur_keeps_constant_grid_and_smooths_spike():
    flat = np.full((20, 30), 12.5)
    np.testing.assert_allclose(gaussian_blur(flat, 3.0), flat)

    spike = np.zeros((21, 21))
    spike[10, 10] = 100.0
    out = gaussian_blur(spike, 2.0)
    assert out[10, 10] < 100.0
    assert out.sum() == pytest.approx(100.0)
    assert out[10, 10] == out.max()


# ── Vertical mapping ────────────────────────────────────────────────────

def test_vertical_compression_fills_budget_exactly():
    grid = np.linspace(0.0, 1000.0, 200).reshape(10, 20)
    ground = -62
    budget = MAX_Y - TERRAIN_HEIGHT_BUFFER - ground
    heights, _ = to_renderer_heights(grid, 1.0, ground)
    assert heights.min() == ground
    assert heights.max() - heights.min() == budget


def test_requested_scale_used_when_it_fits():
    grid = np.linspace(20.0, 30.0, 50).reshape(5, 10)
    heights, sea = to_renderer_heights(grid, 2.0, -62)
    assert heights.max() - heights.min() == 20
    assert sea is None


def test_sea_level_row():
    grid = np.array([[-2.0, 0.0], [4.0, 8.0]])
    heights, sea = to_renderer_heights(grid, 1.0, 0)
    assert heights.tolist() == [[0, 2], [6, 10]]
    assert sea == 2


def test_flat_grid_maps_to_ground():
    heights, sea = to_renderer_heights(np.zeros((3, 3)), 1.0, -62)
    assert (heights == -62).all()
    assert sea is None


# ── End to end ──────────────────────────────────────────────────────────

def test_fetch_elevation_grid(no_sleep):
    waits, sleep = no_sleep
    bbox = BoundingBox.from_edges(55.6750, 12.5700, 55.6755, 12.5710)
    src = np.add.outer(np.linspace(15, 5, 40), np.linspace(0, 5, 60))
    session = FakeSession(get=[FakeResponse(status_code=504, content=b""),
                               tiff_response(src)])
    progress = []
    grid = fetch_elevation_grid(bbox, 1.0, -62, "tok", session=session,
                                sleep=sleep,
                                progress_callback=lambda p, m: progress.append(p))

    assert grid.heights.shape == (grid.height, grid.width)
    assert grid.heights.dtype == np.int32
    assert 50 <= grid.height <= 60 and 55 <= grid.width <= 70
    assert grid.heights.min() == -62
    assert grid.heights.max() <= -62 + 15
    assert grid.sea_level_row is None
    assert waits == [2.0]
    assert session.gets[-1]["params"]["token"] == "tok"
    assert session.gets[-1]["params"]["WIDTH"] == str(grid.width)
    assert progress == [12.0, 15.0]


def test_fetch_elevation_grid_rejects_xml(no_sleep):
    waits, sleep = no_sleep
    bbox = BoundingBox.from_edges(55.6750, 12.5700, 55.6755, 12.5710)
    session = FakeSession(get=[FakeResponse(
        content=b"<ServiceExceptionReport>bad coverage</ServiceExceptionReport>",
        headers={"content-type": "application/xml"})])
    with pytest.raises(ProtocolError, match="bad coverage"):
        fetch_elevation_grid(bbox, 1.0, -62, "tok", session=session,
                             sleep=sleep)


@pytest.mark.parametrize("edges", [
    (55.6750, 12.5600, 55.6760, 12.6000),   # ~2500 m wide, ~110 m tall
    (55.6700, 12.5700, 55.6900, 12.5720),   # ~125 m wide, ~2200 m tall
])
def test_request_size_capped_then_resampled_to_full_grid(no_sleep, edges):
    waits, sleep = no_sleep
    bbox = BoundingBox.from_edges(*edges)
    width, height = grid_dimensions(bbox, 1.0)
    assert max(width, height) > 2048

    src = np.add.outer(np.linspace(20, 10, 30), np.linspace(0, 4, 40))
    session = FakeSession(get=[tiff_response(src)])
    grid = fetch_elevation_grid(bbox, 1.0, -62, "tok", session=session,
                                sleep=sleep)

    params = session.gets[-1]["params"]
    assert params["WIDTH"] == str(min(width, 2048))
    assert params["HEIGHT"] == str(min(height, 2048))
    assert "2048" in (params["WIDTH"], params["HEIGHT"])
    assert (grid.width, grid.height) == (width, height)
    assert grid.heights.shape == (height, width)
