"""
Unit tests for request routing.
"""
import pytest

from caseworker.network import FetchRequest
from caseworker.router import Lane, RequestRouter, resolve_url

from conftest import ORIGIN, url

CDN_SCRIPT = "https://cdn.jsdelivr.net/npm/chart.js@4.4.0/dist/chart.umd.js"


@pytest.fixture
def router():
    return RequestRouter(
        ORIGIN,
        static_assets=["/", "/index.html", "/manifest.json", CDN_SCRIPT],
        api_prefix="/api/",
        static_extensions=[".js", ".css", ".png"],
    )


@pytest.mark.parametrize("path", ["/", "/index.html", "/manifest.json"])
def test_precached_paths_are_cache_first(router, path):
    """Test that precached paths route cache-first"""
    assert router.route(FetchRequest.get(url(path))) == Lane.CACHE_FIRST


def test_cross_origin_precached_url_is_cache_first(router):
    """Test that a precached CDN URL routes cache-first"""
    assert router.route(FetchRequest.get(CDN_SCRIPT)) == Lane.CACHE_FIRST


@pytest.mark.parametrize("path", [
    "/api/cases",
    "/api/cases/12",
    "/api/cases?doctor=Dr.%20A&fromDate=2024-01-01",
    "/api/dashboard/stats",
    "/api/health",
])
def test_api_reads_are_network_first(router, path):
    """Test that API reads route network-first"""
    assert router.route(FetchRequest.get(url(path))) == Lane.NETWORK_FIRST


def test_static_extension_is_cache_first(router):
    """Test that static file extensions route cache-first"""
    assert router.route(FetchRequest.get(url("/icons/icon-192x192.png"))) == Lane.CACHE_FIRST


@pytest.mark.parametrize("target", [
    url("/reports/monthly"),
    url("/apiary"),
    "https://fonts.gstatic.com/s/inter/v12/font.woff2",
])
def test_other_gets_are_stale_while_revalidate(router, target):
    """Test that remaining GETs route stale-while-revalidate"""
    assert router.route(FetchRequest.get(target)) == Lane.STALE_WHILE_REVALIDATE


@pytest.mark.parametrize("method", ["POST", "PUT", "PATCH", "DELETE"])
def test_non_get_is_mutation(router, method):
    """Test that write methods route to the mutation lane"""
    request = FetchRequest(method=method, url=url("/api/cases"))
    assert router.route(request) == Lane.MUTATION


def test_non_get_to_static_asset_is_still_mutation(router):
    """Test that method wins over asset membership"""
    request = FetchRequest(method="POST", url=url("/index.html"))
    assert router.route(request) == Lane.MUTATION


def test_method_is_case_insensitive(router):
    """Test that lowercase methods route the same"""
    request = FetchRequest(method="delete", url=url("/api/cases/1"))
    assert router.route(request) == Lane.MUTATION


def test_added_assets_become_cache_first(router):
    """Test that added assets route cache-first"""
    target = url("/reports/monthly")
    router.add_static_assets(["/reports/monthly"])
    assert router.route(FetchRequest.get(target)) == Lane.CACHE_FIRST


def test_resolve_url():
    """Test that paths resolve against the origin"""
    assert resolve_url(ORIGIN, "/api/cases") == f"{ORIGIN}/api/cases"
    assert resolve_url(ORIGIN, "/") == f"{ORIGIN}/"
    assert resolve_url(ORIGIN, "https://cdn.tailwindcss.com/") == "https://cdn.tailwindcss.com/"
