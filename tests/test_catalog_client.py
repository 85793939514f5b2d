from pathlib import Path

import pytest

from conftest import CATALOG, FakeResponse, catalog_entry
from snappy.catalog import CatalogClient, ImageIndexClient
from snappy.errors import CatalogError, NotFoundError
from snappy.models import PackageIdentity


class _RecordingSink:
    def __init__(self) -> None:
        self.events = []

    def start(self, label, total):
        self.events.append(("start", label, total))

    def update(self, current):
        self.events.append(("update", current))

    def finish(self):
        self.events.append(("finish",))


def test_details_parses_entry_and_sends_headers(fake_http):
    fake_http.route("GET", f"{CATALOG}/details/foo", FakeResponse(200, catalog_entry("foo", "2", "example")))
    client = CatalogClient(
        details_url=f"{CATALOG}/details",
        bulk_url=f"{CATALOG}/bulk",
        token="secret",
        architecture="armhf",
    )

    entry = client.details("foo")

    assert entry.identity == PackageIdentity("foo", "example")
    assert entry.version == "2"
    assert entry.download_url == f"{CATALOG}/dl/foo_2"
    _method, _url, kwargs = fake_http.calls[0]
    assert kwargs["headers"]["Authorization"] == "Bearer secret"
    assert kwargs["headers"]["X-Architecture"] == "armhf"


def test_details_with_origin_uses_qualified_name(catalog: CatalogClient, fake_http):
    fake_http.route("GET", f"{CATALOG}/details/foo.example", FakeResponse(200, catalog_entry("foo", "2", "example")))

    assert catalog.details("foo", "example").origin == "example"


def test_details_unknown_package(catalog: CatalogClient, fake_http):
    fake_http.route("GET", f"{CATALOG}/details/nope", FakeResponse(404, "not found"))
    fake_http.route("GET", f"{CATALOG}/details/broken", FakeResponse(500, "boom"))
    fake_http.route("GET", f"{CATALOG}/details/empty", FakeResponse(200, ""))

    for name in ("nope", "broken", "empty"):
        with pytest.raises(NotFoundError):
            catalog.details(name)


def test_details_rejects_answer_for_other_package(catalog: CatalogClient, fake_http):
    fake_http.route("GET", f"{CATALOG}/details/foo.example", FakeResponse(200, catalog_entry("foo", "2", "other")))

    with pytest.raises(CatalogError):
        catalog.details("foo", "example")


@pytest.mark.parametrize(
    "response",
    [
        FakeResponse(200, "{not json"),
        FakeResponse(200, ["foo"]),
        FakeResponse(200, {"package_name": "foo", "origin": "example"}),
    ],
)
def test_details_errors_are_catalog_errors(catalog: CatalogClient, fake_http, response):
    fake_http.route("GET", f"{CATALOG}/details/foo", response)

    with pytest.raises(CatalogError):
        catalog.details("foo")


def test_transport_failure_is_catalog_error(catalog: CatalogClient, fake_http):
    with pytest.raises(CatalogError):
        catalog.details("unrouted")


def test_bulk_status_sends_qualified_names(catalog: CatalogClient, fake_http):
    fake_http.route("POST", f"{CATALOG}/bulk", FakeResponse(200, [catalog_entry("foo", "2", "example")]))
    installed = [(PackageIdentity("foo", "example"), "1"), (PackageIdentity("bar", "sideload"), "3")]

    entries = catalog.bulk_status(installed)

    assert [(entry.name, entry.version) for entry in entries] == [("foo", "2")]
    _method, _url, kwargs = fake_http.calls[0]
    assert kwargs["json"] == {"name": ["foo.example", "bar.sideload"]}


def test_bulk_status_without_packages_skips_request(catalog: CatalogClient, fake_http):
    assert catalog.bulk_status([]) == []
    assert fake_http.calls == []


def test_bulk_status_rejects_non_list(catalog: CatalogClient, fake_http):
    fake_http.route("POST", f"{CATALOG}/bulk", FakeResponse(200, {"foo": "2"}))

    with pytest.raises(CatalogError):
        catalog.bulk_status([(PackageIdentity("foo", "example"), "1")])


def test_download_streams_to_destination(catalog: CatalogClient, fake_http, tmp_path: Path):
    payload = b"0123456789abcdef"
    fake_http.route("GET", f"{CATALOG}/dl/blob", FakeResponse(200, payload, {"Content-Length": str(len(payload))}))
    sink = _RecordingSink()

    dest = catalog.download(f"{CATALOG}/dl/blob", tmp_path / "out" / "blob.snap", sink)

    assert dest.read_bytes() == payload
    assert sink.events[0] == ("start", "blob.snap", 16)
    assert sink.events[-2:] == [("update", 16), ("finish",)]
    assert [p.name for p in dest.parent.iterdir()] == ["blob.snap"]


def test_download_truncated_leaves_nothing(catalog: CatalogClient, fake_http, tmp_path: Path):
    fake_http.route("GET", f"{CATALOG}/dl/blob", FakeResponse(200, b"short", {"Content-Length": "100"}))

    with pytest.raises(CatalogError):
        catalog.download(f"{CATALOG}/dl/blob", tmp_path / "blob.snap")

    assert list(tmp_path.iterdir()) == []


def test_download_http_error(catalog: CatalogClient, fake_http, tmp_path: Path):
    fake_http.route("GET", f"{CATALOG}/dl/missing", FakeResponse(404, ""))

    with pytest.raises(NotFoundError):
        catalog.download(f"{CATALOG}/dl/missing", tmp_path / "blob.snap")
    assert not (tmp_path / "blob.snap").exists()


def test_image_index_latest(fake_http):
    index = {"stable": {"build_number": 12, "download_url": f"{CATALOG}/img/12", "sha256": "ab"}}
    fake_http.route("GET", f"{CATALOG}/index.json", FakeResponse(200, index))
    client = ImageIndexClient(index_url=f"{CATALOG}/index.json")

    entry = client.latest("stable")

    assert entry.channel == "stable"
    assert entry.build_number == 12
    with pytest.raises(NotFoundError):
        client.latest("devel")


def test_image_index_malformed(fake_http):
    fake_http.route("GET", f"{CATALOG}/index.json", FakeResponse(200, {"stable": {"build_number": "x"}}))

    with pytest.raises(CatalogError):
        ImageIndexClient(index_url=f"{CATALOG}/index.json").latest("stable")


@pytest.mark.parametrize(
    "payload",
    [
        catalog_entry("foo", "2", "x/../../../escaped"),
        catalog_entry("foo", "2", ".hidden"),
        catalog_entry("foo", "../2", "example"),
        catalog_entry("foo", "current", "example"),
    ],
)
def test_details_rejects_unsafe_identity_or_version(catalog: CatalogClient, fake_http, payload):
    fake_http.route("GET", f"{CATALOG}/details/foo", FakeResponse(200, payload))

    with pytest.raises(CatalogError):
        catalog.details("foo")


def test_bulk_status_rejects_unsafe_version(catalog: CatalogClient, fake_http):
    fake_http.route("POST", f"{CATALOG}/bulk", FakeResponse(200, [catalog_entry("foo", "2/beta", "example")]))

    with pytest.raises(CatalogError):
        catalog.bulk_status([(PackageIdentity("foo", "example"), "1")])


def test_download_of_encoded_body_is_not_flagged_truncated(catalog: CatalogClient, fake_http, tmp_path: Path):
    # requests hands back the decoded body; the header counts the compressed bytes
    headers = {"Content-Encoding": "gzip", "Content-Length": "9"}
    fake_http.route("GET", f"{CATALOG}/dl/blob", FakeResponse(200, b"decoded body, longer than nine", headers))

    dest = catalog.download(f"{CATALOG}/dl/blob", tmp_path / "blob.snap")

    assert dest.read_bytes() == b"decoded body, longer than nine"
