"""API resources shown by the CLI: sites, environments, backups, domains and users.

Each model declares its display fields explicitly through output_fields(),
in the order the console renderer prints them.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Dict, List

from terminuscli.domain.models.common import OutputField

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_timestamp(value: float) -> str:
    if not value:
        return ""
    return time.strftime(DATE_FORMAT, time.localtime(value))


def _as_str(value: Any) -> str:
    return "" if value is None else str(value)


def is_uuid(value: str) -> bool:
    """Cheap shape check: 36 chars with dashes at the UUID positions."""
    return (
        len(value) == 36
        and value[8] == "-"
        and value[13] == "-"
        and value[18] == "-"
        and value[23] == "-"
    )


@dataclass
class Site:
    id: str
    name: str = ""
    label: str = ""
    created: int = 0
    framework: str = ""
    plan_name: str = ""
    region: str = ""
    owner: str = ""
    frozen: bool = False
    upstream: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Site":
        upstream = data.get("upstream")
        if isinstance(upstream, dict):
            product_id = _as_str(upstream.get("product_id"))
            url = _as_str(upstream.get("url"))
            upstream = f"{product_id}: {url}" if product_id and url else upstream.get("label", "")
        return cls(
            id=_as_str(data.get("id")),
            name=_as_str(data.get("name")),
            label=_as_str(data.get("label")),
            created=int(data.get("created") or 0),
            framework=_as_str(data.get("framework")),
            plan_name=_as_str(data.get("plan_name")),
            region=_as_str(data.get("preferred_zone_label") or data.get("preferred_zone")),
            owner=_as_str(data.get("owner")),
            frozen=bool(data.get("frozen") or data.get("is_frozen")),
            upstream=_as_str(upstream),
        )

    def output_fields(self) -> List[OutputField]:
        return [
            ("Name", self.name),
            ("ID", self.id),
            ("Plan", self.plan_name),
            ("Framework", self.framework),
            ("Region", self.region),
            ("Owner", self.owner),
            ("Created", format_timestamp(self.created)),
            ("Is Frozen?", "true" if self.frozen else "false"),
        ]


@dataclass
class Environment:
    id: str
    site_id: str = ""
    domain: str = ""
    connection_mode: str = ""
    php_version: str = ""
    locked: bool = False
    initialized: bool = False
    on_server_development: bool = False
    info: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], env_id: str = "") -> "Environment":
        return cls(
            id=_as_str(data.get("id") or env_id),
            site_id=_as_str(data.get("site_id")),
            domain=_as_str(data.get("domain")),
            connection_mode=_as_str(data.get("connection_mode")),
            php_version=_as_str(data.get("php_version")),
            locked=bool(data.get("locked")),
            initialized=bool(data.get("initialized")),
            on_server_development=bool(data.get("on_server_development")),
            info=dict(data.get("info") or {}),
        )

    def output_fields(self) -> List[OutputField]:
        return [
            ("ID", self.id),
            ("Domain", self.domain),
            ("Connection Mode", self.connection_mode),
            ("PHP Version", self.php_version),
            ("Locked", "true" if self.locked else "false"),
            ("Initialized", "true" if self.initialized else "false"),
        ]


@dataclass
class Backup:
    id: str
    site_id: str = ""
    environment_id: str = ""
    archive_type: str = ""
    folder: str = ""
    size: int = 0
    timestamp: int = 0
    expiry_time: int = 0
    initiator_email: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Backup":
        return cls(
            id=_as_str(data.get("id")),
            site_id=_as_str(data.get("site_id")),
            environment_id=_as_str(data.get("env_id")),
            archive_type=_as_str(data.get("type")),
            folder=_as_str(data.get("folder")),
            size=int(data.get("size") or 0),
            timestamp=int(data.get("timestamp") or 0),
            expiry_time=int(data.get("expiry_time") or 0),
            initiator_email=_as_str(data.get("initiator_email")),
        )

    def output_fields(self) -> List[OutputField]:
        return [
            ("Filename", self.folder or self.id),
            ("Type", self.archive_type),
            ("Size", self.size),
            ("Date", format_timestamp(self.timestamp)),
            ("Expiry", format_timestamp(self.expiry_time)),
            ("Initiator", self.initiator_email),
        ]


@dataclass
class Domain:
    id: str
    domain: str = ""
    site_id: str = ""
    environment_id: str = ""
    type: str = ""
    status: str = ""
    deletable: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Domain":
        return cls(
            id=_as_str(data.get("id")),
            domain=_as_str(data.get("domain") or data.get("id")),
            site_id=_as_str(data.get("site_id")),
            environment_id=_as_str(data.get("environment")),
            type=_as_str(data.get("type")),
            status=_as_str(data.get("status")),
            deletable=bool(data.get("deletable")),
        )

    def output_fields(self) -> List[OutputField]:
        return [
            ("Domain", self.domain),
            ("Type", self.type),
            ("Status", self.status),
            ("Deletable", "true" if self.deletable else "false"),
        ]


@dataclass
class User:
    id: str
    email: str = ""
    first_name: str = ""
    last_name: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "User":
        profile = data.get("profile") or {}
        return cls(
            id=_as_str(data.get("id")),
            email=_as_str(data.get("email")),
            first_name=_as_str(profile.get("firstname") or data.get("firstname")),
            last_name=_as_str(profile.get("lastname") or data.get("lastname")),
        )

    def output_fields(self) -> List[OutputField]:
        return [
            ("First Name", self.first_name),
            ("Last Name", self.last_name),
            ("Email", self.email),
            ("ID", self.id),
        ]
