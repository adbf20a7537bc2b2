"""Version alias resolution and downloads against an Artifactory instance."""
from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
import urllib.error
import urllib.parse
import urllib.request
from pathlib import Path

from sonar_orchestrator.config import Configuration
from sonar_orchestrator.errors import ResolutionError
from sonar_orchestrator.locator import MavenLocation
from sonar_orchestrator.version import parse_version

logger = logging.getLogger(__name__)

DEFAULT_URL = "https://repox.jfrog.io/repox"
_TIMEOUT = 30
_DOWNLOAD_REPOSITORIES = ("sonarsource", "sonarsource-qa")
# Responses that mean "not there for you" rather than "broken".
_NOT_FOUND_CODES = (401, 403, 404)


def search_repositories(alias: str) -> str:
    """Return the repositories to search for versions matching *alias*."""
    if alias.startswith("LATEST_RELEASE"):
        # only the artifacts that have been released
        return "sonarsource-releases"
    if alias.startswith("DEV"):
        # only the artifacts that have been promoted (master + release branches)
        return "sonarsource-builds"
    if alias.startswith("DOGFOOD"):
        return "sonarsource-dogfood-builds"
    raise ResolutionError(f"Unsupported version alias: {alias}")


class Artifactory:
    """Client for the subset of the Artifactory REST API the orchestrator uses."""

    def __init__(self, base_url: str, access_token: str | None = None, api_key: str | None = None):
        self.base_url = base_url.rstrip("/")
        self.access_token = access_token
        self.api_key = api_key

    @classmethod
    def from_configuration(cls, config: Configuration) -> Artifactory:
        return cls(
            config.get_string_by_keys("orchestrator.artifactory.url", "ARTIFACTORY_URL") or DEFAULT_URL,
            access_token=config.get_string_by_keys(
                "orchestrator.artifactory.accessToken", "ARTIFACTORY_ACCESS_TOKEN"
            ),
            api_key=config.get_string_by_keys("orchestrator.artifactory.apiKey", "ARTIFACTORY_API_KEY"),
        )

    def _headers(self) -> dict[str, str]:
        if self.access_token:
            return {"Authorization": f"Bearer {self.access_token}"}
        if self.api_key:
            return {"X-JFrog-Art-Api": self.api_key}
        return {}

    def _open(self, url: str):
        req = urllib.request.Request(url, headers=self._headers())
        return urllib.request.urlopen(req, timeout=_TIMEOUT)

    def resolve_version(self, group_id: str, artifact_id: str, alias: str, prefix: str) -> str | None:
        """Return the highest version of an artifact matching *alias* and *prefix*.

        Returns ``None`` when the search finds nothing.
        """
        query = urllib.parse.urlencode({
            "g": group_id,
            "a": artifact_id,
            "remote": "0",
            "repos": search_repositories(alias),
            "v": f"{prefix}*",
        })
        url = f"{self.base_url}/api/search/versions?{query}"
        try:
            with self._open(url) as resp:
                data = json.loads(resp.read())
        except urllib.error.HTTPError as exc:
            if exc.code == 404:
                return None
            raise ResolutionError(f"Fail to request versions at {url}: HTTP {exc.code}") from exc
        except (urllib.error.URLError, TimeoutError, ValueError) as exc:
            raise ResolutionError(f"Fail to request versions at {url}: {exc}") from exc

        versions = [
            v for v in (parse_version(r.get("version", "")) for r in data.get("results", []))
            if v is not None
        ]
        if not versions:
            return None
        return str(max(versions))

    def _artifact_url(self, location: MavenLocation, repository: str) -> str:
        return "/".join([
            self.base_url,
            repository,
            location.group_id.replace(".", "/"),
            location.artifact_id,
            location.version,
            location.filename,
        ])

    def download_to_file(self, location: MavenLocation, to_file: Path) -> bool:
        """Download *location* to *to_file*. Returns ``False`` if no repository has it."""
        for repository in _DOWNLOAD_REPOSITORIES:
            url = self._artifact_url(location, repository)
            fd, tmp_path = tempfile.mkstemp(dir=str(to_file.parent))
            try:
                logger.info("Downloading %s", url)
                with os.fdopen(fd, "wb") as out:
                    with self._open(url) as resp:
                        shutil.copyfileobj(resp, out)
                os.replace(tmp_path, to_file)
                logger.info("Found %s at %s", location, url)
                return True
            except urllib.error.HTTPError as exc:
                if exc.code not in _NOT_FOUND_CODES:
                    raise OSError(f"Failed to request {url}: HTTP {exc.code}") from exc
                logger.warning(
                    "Could not download artifact from repository '%s': %s", repository, exc.code
                )
            finally:
                if os.path.exists(tmp_path):
                    os.unlink(tmp_path)
        return False
