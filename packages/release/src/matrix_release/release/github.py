from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

import httpx
import structlog
from matrix_release.core import ConfigError, PublishFailure

from .http import HttpRequestError, make_http_client, request_with_retries
from .models import AssetInfo, ReleaseInfo

log = structlog.get_logger(__name__)

DEFAULT_API_URL = "https://api.github.com"
DEFAULT_UPLOADS_URL = "https://uploads.github.com"
ASSETS_PER_PAGE = 100


@runtime_checkable
class ReleaseClient(Protocol):
    """
    A release hosting backend.

    ensure_release creates the release for a tag when missing and returns it
    as a non-prerelease. upload_asset overwrites any asset with the same name.
    """

    def ensure_release(self, tag: str) -> ReleaseInfo: ...
    def upload_asset(self, release: ReleaseInfo, name: str, content: bytes) -> AssetInfo: ...


def _check_repository(repository: str) -> str:
    parts = repository.strip().split("/")
    if len(parts) != 2 or not all(parts):
        raise ConfigError(f"Repository must be 'owner/name', got {repository!r}")
    return "/".join(parts)


class GitHubReleaseClient:
    """
    GitHub Releases over the REST API.
    """

    def __init__(
        self,
        *,
        repository: str,
        token: str,
        api_url: str = DEFAULT_API_URL,
        uploads_url: str = DEFAULT_UPLOADS_URL,
        client: Optional[httpx.Client] = None,
        transport: Optional[httpx.BaseTransport] = None,
        max_attempts: int = 3,
    ) -> None:
        if not token:
            raise ConfigError("A GitHub token is required to publish releases")
        self.repository = _check_repository(repository)
        self.api_url = api_url.rstrip("/")
        self.uploads_url = uploads_url.rstrip("/")
        self.max_attempts = max_attempts
        self._client = client or make_http_client(
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "GitHubReleaseClient":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def _repo_url(self, path: str) -> str:
        return f"{self.api_url}/repos/{self.repository}{path}"

    def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        try:
            return request_with_retries(
                self._client,
                method=method,
                url=url,
                max_attempts=self.max_attempts,
                **kwargs,
            )
        except HttpRequestError as e:
            raise PublishFailure(str(e)) from e

    @staticmethod
    def _json(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise PublishFailure(
                f"HTTP {resp.status_code} for {resp.request.method} {resp.request.url}: "
                f"response is not JSON"
            ) from e

    @staticmethod
    def _release_info(payload: dict[str, Any], *, created: bool) -> ReleaseInfo:
        if not isinstance(payload, dict) or "tag_name" not in payload:
            raise PublishFailure(f"Unexpected release payload: {str(payload)[:200]}")
        return ReleaseInfo(
            tag=payload["tag_name"],
            id=payload.get("id"),
            url=payload.get("html_url"),
            prerelease=bool(payload.get("prerelease", False)),
            created=created,
        )

    def _find_release(self, tag: str) -> Optional[dict[str, Any]]:
        resp = self._request(
            "GET", self._repo_url(f"/releases/tags/{tag}"), allowed_statuses=(200, 404)
        )
        if resp.status_code == 404:
            return None
        return self._json(resp)

    def ensure_release(self, tag: str) -> ReleaseInfo:
        payload = self._find_release(tag)
        created = False
        if payload is None:
            resp = self._request(
                "POST",
                self._repo_url("/releases"),
                json={"tag_name": tag, "name": tag, "prerelease": False},
                allowed_statuses=(201,),
            )
            payload = self._json(resp)
            created = True
            log.info("github.release.created", tag=tag, id=payload.get("id"))

        if not isinstance(payload, dict):
            raise PublishFailure(f"Unexpected release payload for {tag}: {str(payload)[:200]}")
        if payload.get("prerelease"):
            resp = self._request(
                "PATCH",
                self._repo_url(f"/releases/{payload['id']}"),
                json={"prerelease": False},
                allowed_statuses=(200,),
            )
            payload = self._json(resp)
            log.info("github.release.promoted", tag=tag, id=payload.get("id"))

        return self._release_info(payload, created=created)

    def _existing_asset(self, release: ReleaseInfo, name: str) -> Optional[dict[str, Any]]:
        page = 1
        while True:
            resp = self._request(
                "GET",
                self._repo_url(f"/releases/{release.id}/assets"),
                params={"per_page": str(ASSETS_PER_PAGE), "page": str(page)},
                allowed_statuses=(200,),
            )
            items = self._json(resp)
            if not isinstance(items, list):
                raise PublishFailure(
                    f"Unexpected asset listing for {release.tag}: {str(items)[:200]}"
                )
            for asset in items:
                if isinstance(asset, dict) and asset.get("name") == name and "id" in asset:
                    return asset
            if len(items) < ASSETS_PER_PAGE:
                return None
            page += 1

    def upload_asset(self, release: ReleaseInfo, name: str, content: bytes) -> AssetInfo:
        if release.id is None:
            raise PublishFailure(f"Release {release.tag} has no id; cannot upload {name}")

        existing = self._existing_asset(release, name)
        if existing is not None:
            self._request(
                "DELETE",
                self._repo_url(f"/releases/assets/{existing['id']}"),
                allowed_statuses=(204, 404),
            )
            log.info("github.asset.deleted", tag=release.tag, name=name, id=existing["id"])

        resp = self._request(
            "POST",
            f"{self.uploads_url}/repos/{self.repository}/releases/{release.id}/assets",
            params={"name": name},
            headers={"Content-Type": "application/octet-stream"},
            content=content,
            allowed_statuses=(201,),
        )
        payload = self._json(resp)
        if not isinstance(payload, dict):
            raise PublishFailure(f"Unexpected upload response for {name}: {str(payload)[:200]}")
        return AssetInfo(
            name=payload.get("name", name),
            size=int(payload.get("size", len(content))),
            id=payload.get("id"),
            url=payload.get("browser_download_url"),
            replaced=existing is not None,
        )
