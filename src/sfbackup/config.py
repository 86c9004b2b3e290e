"""Backup run configuration.

A run is driven by a JSON file (see :data:`SAMPLE_CONFIG`). Salesforce
credentials left out of the file are taken from ``SF_*`` environment
variables, which may come from a ``.env`` next to the config file.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field, fields
from datetime import date
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .api import SFConfig
from .env_loader import env_candidates, load_env_files
from .exceptions import ConfigError
from .utils import expand_date_placeholders

_logger = logging.getLogger(__name__)

SAMPLE_CONFIG = """{
"url": "https://login.salesforce.com",
"username": "yoursalesforce@user.name",
"password": "qwerty",
"token": "1234567890",
"client_id": "connected-app-consumer-key",
"client_secret": "connected-app-consumer-secret",
"path": "/path/to/backup/files-{YYYY}-{MM}-{DD}",
"include": [ "objects", "to", "include" ],
"comment-include-exclude": "use either include or exclude, empty or missing include means all objects.",
"hours": 24,
"comment-hours": "set 0 or delete for initial backups, for deltas set to frequency.",
"email": {
  "server": "smtp.server:port",
  "user": "user.if.needed",
  "password": "password.if.needed",
  "from": "email.from@me.me",
  "to": [ "first.admin@me.me", "second.admin@me.me" ]
},
"log": "/path/to/backup.log",
"comment-log": "optional file that receives the run's log records."
}
"""


@dataclass
class EmailConfig:
    server: str = ""
    user: str = ""
    password: str = ""
    sender: str = ""
    to: List[str] = field(default_factory=list)
    starttls: bool = False

    @property
    def enabled(self) -> bool:
        return bool(self.to)

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, Any]]) -> EmailConfig:
        d = d or {}
        to = d.get("to") or []
        if isinstance(to, str):
            to = [to]
        return cls(
            server=d.get("server", ""),
            user=d.get("user", ""),
            password=d.get("password", ""),
            sender=d.get("from", "") or d.get("user", ""),
            to=list(to),
            starttls=bool(d.get("starttls", False)),
        )


def split_host_port(server: str) -> Tuple[str, int]:
    """Split ``host:port``; raises ConfigError when either half is missing."""
    host, sep, port = (server or "").rpartition(":")
    if not sep or not host or not port.isdigit():
        raise ConfigError(f"failed to parse email server: {server!r} (expected host:port)")
    return host.strip("[]"), int(port)


@dataclass
class BackupConfig:
    path: str
    url: str = "https://login.salesforce.com"
    username: Optional[str] = None
    password: Optional[str] = None
    token: Optional[str] = None
    client_id: Optional[str] = None
    client_secret: Optional[str] = None
    auth_flow: Optional[str] = None
    api_version: Optional[str] = None
    include: List[str] = field(default_factory=list)
    exclude: List[str] = field(default_factory=list)
    hours: int = 0
    email: EmailConfig = field(default_factory=EmailConfig)
    log: Optional[str] = None

    @classmethod
    def from_dict(cls, raw: Dict[str, Any], today: Optional[date] = None) -> BackupConfig:
        known = {f.name for f in fields(cls)}
        unknown = [k for k in raw if k not in known and not k.startswith("comment")]
        if unknown:
            _logger.warning("Ignoring unknown config keys: %s", ", ".join(sorted(unknown)))

        path = raw.get("path")
        if not path:
            raise ConfigError("config is missing 'path'")

        try:
            hours = int(raw.get("hours") or 0)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"'hours' must be an integer, got {raw.get('hours')!r}") from e

        for key in ("include", "exclude"):
            names = raw.get(key) or []
            if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
                raise ConfigError(f"'{key}' must be a list of object names")

        return cls(
            path=expand_date_placeholders(path, today),
            url=raw.get("url") or "https://login.salesforce.com",
            username=raw.get("username"),
            password=raw.get("password"),
            token=raw.get("token"),
            client_id=raw.get("client_id"),
            client_secret=raw.get("client_secret"),
            auth_flow=raw.get("auth_flow"),
            api_version=raw.get("api_version"),
            include=list(raw.get("include") or []),
            exclude=list(raw.get("exclude") or []),
            hours=hours,
            email=EmailConfig.from_dict(raw.get("email")),
            log=raw.get("log") or None,
        )

    @classmethod
    def from_file(cls, filename: str, today: Optional[date] = None) -> BackupConfig:
        try:
            text = Path(filename).read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(f"cannot open config file: {filename}: {e}") from e
        try:
            raw = json.loads(text)
        except json.JSONDecodeError as e:
            raise ConfigError(f"error parsing config file: {filename}: {e}") from e
        if not isinstance(raw, dict):
            raise ConfigError(f"error parsing config file: {filename}: expected a JSON object")

        load_env_files(env_candidates(Path(filename)), quiet=True)
        return cls.from_dict(raw, today)

    def sf_config(self) -> SFConfig:
        """Salesforce auth settings: file values first, environment as fallback."""
        env = SFConfig.from_env()
        if self.auth_flow:
            flow = self.auth_flow
        elif self.username:
            flow = "password"
        else:
            flow = env.auth_flow
        return SFConfig(
            auth_flow=flow,
            login_url=self.url or env.login_url,
            client_id=self.client_id or env.client_id,
            client_secret=self.client_secret or env.client_secret,
            username=self.username or env.username,
            password=self.password or env.password,
            security_token=self.token or env.security_token,
            access_token=env.access_token,
            instance_url=env.instance_url,
            api_version=self.api_version or env.api_version,
        )


def write_sample_config(filename: str) -> None:
    """Create a sample config file; never overwrites an existing one."""
    try:
        with open(filename, "x", encoding="utf-8") as f:
            f.write(SAMPLE_CONFIG)
    except OSError as e:
        raise ConfigError(f"failed to create new config file: {e}") from e
    _logger.debug("Wrote sample config to %s", os.path.abspath(filename))
