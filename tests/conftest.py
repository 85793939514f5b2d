import json
import zipfile
from pathlib import Path
from typing import Any, Callable, Dict, List, Tuple, Union

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from snappy.catalog import CatalogClient
from snappy.install import Installer
from snappy.store import HomeUserDirectory, VersionStore

CATALOG = "http://catalog.test"


class FakeResponse:
    def __init__(self, status_code: int = 200, body: Any = b"", headers: Dict[str, str] | None = None) -> None:
        if isinstance(body, (dict, list)):
            body = json.dumps(body)
        if isinstance(body, str):
            body = body.encode("utf-8")
        self.status_code = status_code
        self.content = body
        self.headers = CaseInsensitiveDict(headers or {})
        self.closed = False

    def json(self) -> Any:
        return json.loads(self.content.decode("utf-8"))

    def iter_content(self, chunk_size: int = 1):
        for start in range(0, len(self.content), chunk_size):
            yield self.content[start : start + chunk_size]

    def close(self) -> None:
        self.closed = True


Handler = Union[FakeResponse, Callable[..., FakeResponse]]


class FakeHttp:
    """Routes ``requests.request`` calls to canned responses."""

    def __init__(self) -> None:
        self.routes: Dict[Tuple[str, str], Handler] = {}
        self.calls: List[Tuple[str, str, Dict[str, Any]]] = []

    def route(self, method: str, url: str, handler: Handler) -> None:
        self.routes[(method.upper(), url)] = handler

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append((method.upper(), url, kwargs))
        handler = self.routes.get((method.upper(), url)) or self.routes.get(("*", url))
        if handler is None:
            raise requests.ConnectionError(f"no route for {method} {url}")
        if callable(handler):
            return handler(method, url, **kwargs)
        return handler

    def urls(self) -> List[str]:
        return [url for _method, url, _kwargs in self.calls]


@pytest.fixture
def fake_http(monkeypatch: pytest.MonkeyPatch) -> FakeHttp:
    server = FakeHttp()
    monkeypatch.setattr(requests, "request", server.request)
    return server


@pytest.fixture
def make_snap(tmp_path: Path) -> Callable[..., Path]:
    counter = {"n": 0}

    def _make(name: str = "foo", version: str = "1.0", **extra: Any) -> Path:
        counter["n"] += 1
        path = tmp_path / "snaps" / f"{name}_{version}_{counter['n']}.snap"
        path.parent.mkdir(parents=True, exist_ok=True)
        manifest = {"name": name, "version": version, "vendor": "Foo Bar <foo@example.com>", **extra}
        with zipfile.ZipFile(path, "w") as archive:
            archive.writestr("manifest.json", json.dumps(manifest))
            archive.writestr("bin/hello", f"#!/bin/sh\necho {name} {version}\n")
        return path

    return _make


@pytest.fixture
def home_root(tmp_path: Path) -> Path:
    root = tmp_path / "home"
    root.mkdir()
    return root


@pytest.fixture
def store(tmp_path: Path, home_root: Path) -> VersionStore:
    return VersionStore(tmp_path / "apps", HomeUserDirectory(home_root))


@pytest.fixture
def catalog() -> CatalogClient:
    return CatalogClient(
        details_url=f"{CATALOG}/details/",
        bulk_url=f"{CATALOG}/bulk",
        timeout_seconds=5,
        chunk_size=7,
    )


@pytest.fixture
def installer(store: VersionStore, catalog: CatalogClient, tmp_path: Path) -> Installer:
    return Installer(store, catalog, icons_dir=tmp_path / "icons")


def catalog_entry(name: str, version: str, origin: str, **extra: Any) -> Dict[str, Any]:
    payload = {
        "package_name": name,
        "version": version,
        "origin": origin,
        "anon_download_url": f"{CATALOG}/dl/{name}_{version}",
        "icon_url": f"{CATALOG}/icon/{name}",
    }
    payload.update(extra)
    return payload


def serve_package(fake_http: FakeHttp, snap: Path, name: str, version: str, origin: str, **extra: Any) -> Dict[str, Any]:
    """Publish ``snap`` as the catalog's answer for ``name`` and return its entry."""

    entry = catalog_entry(name, version, origin, **extra)
    fake_http.route("GET", f"{CATALOG}/details/{name}", FakeResponse(200, entry))
    fake_http.route("GET", f"{CATALOG}/details/{name}.{origin}", FakeResponse(200, entry))
    fake_http.route("GET", entry["anon_download_url"], lambda *_a, **_k: FakeResponse(200, snap.read_bytes()))
    fake_http.route("GET", entry["icon_url"], FakeResponse(200, b"<svg/>"))
    return entry
