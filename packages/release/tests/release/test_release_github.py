from __future__ import annotations

import json
from pathlib import Path

import httpx
import pytest
from matrix_release.core import ConfigError, PublishFailure
from matrix_release.release import (
    GitHubReleaseClient,
    PublicationStatus,
    ReleasePublisher,
    ReleaseTarget,
    UploadStatus,
)
from matrix_release.store import FilesystemArtifactStore

REPO = "acme/recorder"


class FakeGitHub:
    """
    Minimal in-memory GitHub Releases API for httpx.MockTransport.
    """

    def __init__(self) -> None:
        self.releases: dict[str, dict] = {}
        self.assets: dict[int, list[dict]] = {}
        self.requests: list[tuple[str, str]] = []
        self.fail_next: list[int] = []
        self.html_uploads: set[str] = set()
        self._next_id = 100

    def _id(self) -> int:
        self._next_id += 1
        return self._next_id

    def add_release(self, tag: str, *, prerelease: bool = False) -> dict:
        rel = {
            "id": self._id(),
            "tag_name": tag,
            "prerelease": prerelease,
            "html_url": f"https://github.com/{REPO}/releases/tag/{tag}",
        }
        self.releases[tag] = rel
        self.assets[rel["id"]] = []
        return rel

    def _by_id(self, rid: int) -> dict:
        return next(r for r in self.releases.values() if r["id"] == rid)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        method, path = request.method, request.url.path
        self.requests.append((method, f"{request.url.host}{path}"))
        assert request.headers["Authorization"] == "Bearer t0ken"

        if self.fail_next:
            return httpx.Response(self.fail_next.pop(0), json={"message": "flaky"})

        prefix = f"/repos/{REPO}/releases"
        if method == "GET" and path.startswith(f"{prefix}/tags/"):
            tag = path[len(f"{prefix}/tags/"):]
            if tag not in self.releases:
                return httpx.Response(404, json={"message": "Not Found"})
            return httpx.Response(200, json=self.releases[tag])

        if method == "POST" and path == prefix and request.url.host == "api.github.com":
            body = json.loads(request.content)
            rel = self.add_release(body["tag_name"], prerelease=body["prerelease"])
            return httpx.Response(201, json=rel)

        if method == "PATCH" and path.startswith(f"{prefix}/"):
            rel = self._by_id(int(path.rsplit("/", 1)[1]))
            rel.update(json.loads(request.content))
            return httpx.Response(200, json=rel)

        if method == "DELETE" and path.startswith(f"{prefix}/assets/"):
            aid = int(path.rsplit("/", 1)[1])
            for items in self.assets.values():
                items[:] = [a for a in items if a["id"] != aid]
            return httpx.Response(204)

        if path.startswith(f"{prefix}/") and path.endswith("/assets"):
            rid = int(path[len(prefix) + 1 : -len("/assets")])
            if method == "GET":
                per_page = int(request.url.params.get("per_page", "30"))
                page = int(request.url.params.get("page", "1"))
                start = (page - 1) * per_page
                return httpx.Response(200, json=self.assets[rid][start : start + per_page])
            if method == "POST" and request.url.host == "uploads.github.com":
                assert request.headers["Content-Type"] == "application/octet-stream"
                name = request.url.params["name"]
                if name in self.html_uploads:
                    return httpx.Response(201, text="<html>proxy</html>")
                if any(a["name"] == name for a in self.assets[rid]):
                    return httpx.Response(422, json={"message": "already_exists"})
                asset = {
                    "id": self._id(),
                    "name": name,
                    "size": len(request.content),
                    "browser_download_url": f"https://github.com/{REPO}/releases/download/x/{name}",
                }
                self.assets[rid].append(asset)
                return httpx.Response(201, json=asset)

        return httpx.Response(500, json={"message": f"unexpected {method} {path}"})


def _client(fake: FakeGitHub, **kw) -> GitHubReleaseClient:
    return GitHubReleaseClient(
        repository=REPO, token="t0ken", transport=httpx.MockTransport(fake), **kw
    )


def test_ensure_release_creates_missing_release() -> None:
    fake = FakeGitHub()
    with _client(fake) as client:
        rel = client.ensure_release("v1.0.0")

    assert rel.created
    assert rel.tag == "v1.0.0"
    assert rel.prerelease is False
    assert fake.releases["v1.0.0"]["prerelease"] is False


def test_ensure_release_clears_prerelease_flag() -> None:
    fake = FakeGitHub()
    fake.add_release("v1.0.0", prerelease=True)
    with _client(fake) as client:
        rel = client.ensure_release("v1.0.0")

    assert not rel.created
    assert rel.prerelease is False
    assert ("PATCH", f"api.github.com/repos/{REPO}/releases/{rel.id}") in fake.requests


def test_upload_overwrites_existing_asset() -> None:
    fake = FakeGitHub()
    with _client(fake) as client:
        rel = client.ensure_release("v1.0.0")
        first = client.upload_asset(rel, "app-x86_64-unknown-linux-gnu", b"one")
        second = client.upload_asset(rel, "app-x86_64-unknown-linux-gnu", b"second")

    assert not first.replaced
    assert second.replaced
    assets = fake.assets[rel.id]
    assert [a["name"] for a in assets] == ["app-x86_64-unknown-linux-gnu"]
    assert assets[0]["size"] == len(b"second")
    assert any(m == "DELETE" for m, _ in fake.requests)


def test_transient_errors_are_retried() -> None:
    fake = FakeGitHub()
    fake.fail_next = [503]
    with _client(fake) as client:
        rel = client.ensure_release("v2")
    assert rel.created


def test_non_retryable_status_raises_publish_failure() -> None:
    fake = FakeGitHub()
    fake.fail_next = [403]
    with _client(fake) as client:
        with pytest.raises(PublishFailure):
            client.ensure_release("v2")


def test_retries_exhausted_raise_publish_failure() -> None:
    fake = FakeGitHub()
    fake.fail_next = [502, 502]
    with _client(fake, max_attempts=2) as client:
        with pytest.raises(PublishFailure):
            client.ensure_release("v2")


def test_configuration_is_validated() -> None:
    with pytest.raises(ConfigError):
        GitHubReleaseClient(repository="no-slash", token="x")
    with pytest.raises(ConfigError):
        GitHubReleaseClient(repository=REPO, token="")


def test_existing_asset_found_beyond_first_page() -> None:
    fake = FakeGitHub()
    rel = fake.add_release("v1.0.0")
    fake.assets[rel["id"]] = [
        {"id": 1000 + i, "name": f"extra-{i:03d}", "size": 1} for i in range(150)
    ]
    fake.assets[rel["id"]].append({"id": 5000, "name": "app-x86_64-unknown-linux-gnu", "size": 3})

    with _client(fake) as client:
        info = client.ensure_release("v1.0.0")
        asset = client.upload_asset(info, "app-x86_64-unknown-linux-gnu", b"new")

    assert asset.replaced
    names = [a["name"] for a in fake.assets[rel["id"]]]
    assert names.count("app-x86_64-unknown-linux-gnu") == 1
    assert len(names) == 151


def test_non_json_upload_response_is_a_publish_failure() -> None:
    fake = FakeGitHub()
    fake.html_uploads = {"app-a"}
    with _client(fake) as client:
        rel = client.ensure_release("v1.0.0")
        with pytest.raises(PublishFailure):
            client.upload_asset(rel, "app-a", b"a")


def test_garbled_upload_does_not_stop_later_uploads(tmp_path: Path) -> None:
    store = FilesystemArtifactStore(tmp_path / "store")
    arts = []
    for name in ("app-a", "app-b"):
        src = tmp_path / name
        src.write_bytes(name.encode())
        arts.append(store.put("run1", name, src, target=name))

    fake = FakeGitHub()
    fake.html_uploads = {"app-a"}
    with _client(fake) as client:
        report = ReleasePublisher(client).publish(
            ReleaseTarget(tag="v1.0.0"), arts, store=store, run_id="run1"
        )

    assert report.status == PublicationStatus.partially_failed
    assert [(o.name, o.status) for o in report.outcomes] == [
        ("app-a", UploadStatus.failed),
        ("app-b", UploadStatus.uploaded),
    ]
    assert report.outcomes[0].error.exc_type == "PublishFailure"
    rel_id = fake.releases["v1.0.0"]["id"]
    assert [a["name"] for a in fake.assets[rel_id]] == ["app-b"]
