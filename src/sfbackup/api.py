from __future__ import annotations

import logging
import os
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional

import requests

from .exceptions import MissingCredentialsError

__author__ = "sfbackup contributors"
__copyright__ = "sfbackup contributors"
__license__ = "MIT"

_logger = logging.getLogger(__name__)

_CHUNK_SIZE = 1024 * 1024


# ----------------------------------------------------------------------
# Configuration dataclass
# ----------------------------------------------------------------------
@dataclass
class SFConfig:
    """Configuration for Salesforce API authentication."""

    # "client_credentials" or "password"
    auth_flow: str = "client_credentials"

    # Base login URL (not the instance URL)
    login_url: str = "https://login.salesforce.com"

    client_id: Optional[str] = None
    client_secret: Optional[str] = None

    # Username/password flow; the security token is appended to the password
    username: Optional[str] = None
    password: Optional[str] = None
    security_token: Optional[str] = None

    # Optional: pre-provided token / instance URL (e.g. from cache)
    access_token: Optional[str] = None
    instance_url: Optional[str] = None

    # Optional: override API version (e.g. "v60.0"); otherwise auto-discover
    api_version: Optional[str] = None

    @classmethod
    def from_env(cls) -> SFConfig:
        """Load configuration from environment variables."""
        return cls(
            auth_flow=os.getenv("SF_AUTH_FLOW", "client_credentials"),
            login_url=os.getenv("SF_LOGIN_URL", "https://login.salesforce.com"),
            client_id=os.getenv("SF_CLIENT_ID"),
            client_secret=os.getenv("SF_CLIENT_SECRET"),
            username=os.getenv("SF_USERNAME"),
            password=os.getenv("SF_PASSWORD"),
            security_token=os.getenv("SF_SECURITY_TOKEN"),
            access_token=os.getenv("SF_ACCESS_TOKEN"),
            instance_url=os.getenv("SF_INSTANCE_URL"),
            api_version=os.getenv("SF_API_VERSION"),
        )


def _strip_attributes(value: Any) -> Any:
    """Drop the REST ``attributes`` blocks, including those of nested parents."""
    if isinstance(value, dict):
        value.pop("attributes", None)
        for v in value.values():
            if isinstance(v, dict):
                _strip_attributes(v)
    return value


# ----------------------------------------------------------------------
# Main API client
# ----------------------------------------------------------------------
class SalesforceAPI:
    """Minimal Salesforce REST API client used by the backup run."""

    def __init__(self, cfg: Optional[SFConfig] = None) -> None:
        self.cfg = cfg or SFConfig.from_env()
        self.session = requests.Session()
        self.access_token: Optional[str] = None
        self.instance_url: Optional[str] = None
        self.api_version: Optional[str] = None

    # --------------------------- Public methods -----------------------

    def connect(self) -> None:
        """Authenticate using either an existing token or configured auth flow."""
        if self.cfg.access_token and self.cfg.instance_url:
            _logger.debug("Using existing access token from configuration.")
            self.access_token = self.cfg.access_token
            self.instance_url = self.cfg.instance_url.rstrip("/")
        else:
            _logger.info("Performing OAuth login using auth flow: %s", self.cfg.auth_flow)
            self._login_via_auth_flow()

        if not self.access_token or not self.instance_url:
            raise RuntimeError("Authentication did not yield access_token and instance_url.")

        self.session.headers.update({"Authorization": f"Bearer {self.access_token}"})
        self.api_version = self.cfg.api_version or self._discover_latest_api_version()
        _logger.info(
            "Connected to Salesforce instance=%s api=%s",
            self.instance_url,
            self.api_version,
        )

    def describe_global(self) -> dict:
        """Return /sobjects (global describe)."""
        return self._get(self._data_url("sobjects")).json()

    def describe_object(self, name: str) -> dict:
        """Return /sobjects/{name}/describe."""
        return self._get(self._data_url(f"sobjects/{name}/describe")).json()

    def describe_objects(self, names: List[str]) -> List[dict]:
        """Describe several sObjects; callers keep batches at 100 names or fewer."""
        _logger.debug("Describing %d sObjects", len(names))
        return [self.describe_object(n) for n in names]

    def query_all_iter(self, soql: str) -> Iterator[dict]:
        """Yield records across pages via nextRecordsUrl."""
        res = self._get(self._data_url("query"), params={"q": soql}).json()
        for r in res.get("records", []):
            yield _strip_attributes(r)
        next_url = res.get("nextRecordsUrl")
        while next_url:
            res = self._get(f"{self.instance_url}{next_url}").json()
            for r in res.get("records", []):
                yield _strip_attributes(r)
            next_url = res.get("nextRecordsUrl")

    def download_path_to_file(self, rel_path: str, target: str) -> int:
        """Stream a binary resource (e.g. a base64 field's Body URL) to ``target``."""
        if not self.instance_url:
            raise RuntimeError("Not connected; call connect() first.")
        url = f"{self.instance_url}{rel_path}"
        written = 0
        with self.session.get(url, stream=True, timeout=300) as r:
            r.raise_for_status()
            with open(target, "wb") as f:
                for chunk in r.iter_content(chunk_size=_CHUNK_SIZE):
                    if chunk:
                        f.write(chunk)
                        written += len(chunk)
        return written

    # --------------------------- Internal helpers --------------------

    def _data_url(self, suffix: str) -> str:
        return f"{self.instance_url}/services/data/{self.api_version}/{suffix}"

    def _login_via_auth_flow(self) -> None:
        """Dispatch to the configured auth flow."""
        if self.cfg.auth_flow == "client_credentials":
            self._client_credentials_login()
        elif self.cfg.auth_flow == "password":
            self._password_login()
        else:
            raise RuntimeError(f"Unsupported SF_AUTH_FLOW: {self.cfg.auth_flow!r}")

    def _client_credentials_login(self) -> None:
        """Perform OAuth2 client credentials flow."""
        self._require(
            {
                "SF_CLIENT_ID": self.cfg.client_id,
                "SF_CLIENT_SECRET": self.cfg.client_secret,
                "SF_LOGIN_URL": self.cfg.login_url,
            }
        )
        self._token_request(
            {
                "grant_type": "client_credentials",
                "client_id": self.cfg.client_id,
                "client_secret": self.cfg.client_secret,
            }
        )

    def _password_login(self) -> None:
        """Perform OAuth2 username-password flow (password + security token)."""
        self._require(
            {
                "SF_CLIENT_ID": self.cfg.client_id,
                "SF_CLIENT_SECRET": self.cfg.client_secret,
                "SF_USERNAME": self.cfg.username,
                "SF_PASSWORD": self.cfg.password,
                "SF_LOGIN_URL": self.cfg.login_url,
            }
        )
        self._token_request(
            {
                "grant_type": "password",
                "client_id": self.cfg.client_id,
                "client_secret": self.cfg.client_secret,
                "username": self.cfg.username,
                "password": (self.cfg.password or "") + (self.cfg.security_token or ""),
            }
        )

    @staticmethod
    def _require(values: Dict[str, Optional[str]]) -> None:
        missing = [k for k, v in values.items() if not v]
        if missing:
            raise MissingCredentialsError(missing)

    def _token_request(self, data: Dict[str, Any]) -> None:
        token_url = f"{self.cfg.login_url.rstrip('/')}/services/oauth2/token"
        _logger.debug("Requesting access token from %s", token_url)
        payload = self._post(token_url, data=data, auth_required=False).json()

        self.access_token = payload["access_token"]
        self.instance_url = payload["instance_url"].rstrip("/")

    def _discover_latest_api_version(self) -> str:
        """Find the latest available API version."""
        url = f"{self.instance_url}/services/data/"
        versions = self._get(url).json()
        best = sorted(versions, key=lambda v: float(v.get("version", "0")), reverse=True)[0]
        version_str = best.get("url", "").split("/")[-1]
        _logger.debug("Latest API version discovered: %s", version_str)
        return version_str

    # --------------------------- HTTP wrappers -----------------------

    def _get(
        self,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        auth_required: bool = True,
    ) -> requests.Response:
        return self._request("GET", url, params=params, auth_required=auth_required)

    def _post(
        self,
        url: str,
        *,
        data: Optional[Dict[str, Any]] = None,
        auth_required: bool = True,
    ) -> requests.Response:
        return self._request("POST", url, data=data, auth_required=auth_required)

    def _request(
        self,
        method: str,
        url: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[Dict[str, Any]] = None,
        auth_required: bool = True,
        retries: int = 3,
        backoff: float = 0.8,
        timeout: float = 120.0,
    ) -> requests.Response:
        """Generic request with retry and logging."""
        headers: Dict[str, str] = {}
        if auth_required and self.access_token:
            headers["Authorization"] = f"Bearer {self.access_token}"

        for attempt in range(1, retries + 1):
            try:
                r = self.session.request(
                    method,
                    url,
                    params=params,
                    data=data,
                    headers=headers,
                    timeout=timeout,
                )
            except requests.RequestException as e:
                _logger.warning("Request error (attempt %d/%d): %s", attempt, retries, e)
                if attempt == retries:
                    raise
                time.sleep(backoff * attempt)
                continue

            if r.status_code < 400:
                return r

            if r.status_code in (429, 500, 502, 503, 504) and attempt < retries:
                _logger.warning("HTTP %s -> retrying %d/%d", r.status_code, attempt, retries)
                time.sleep(backoff * attempt)
                continue

            try:
                detail = r.json()
            except ValueError:
                detail = r.text
            _logger.error("HTTP %s error for %s: %s", r.status_code, url, detail)
            r.raise_for_status()
        raise RuntimeError("Exceeded maximum retries.")
