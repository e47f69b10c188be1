"""Pydantic data models shared across the bundle compiler."""
from __future__ import annotations

from typing import Annotated, Any, Dict, List, Literal, Optional, Tuple, Union

from pydantic import (
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
    model_serializer,
)
from pydantic.alias_generators import to_camel

from .constants import HTTP_PROTOCOLS


class OneDependency(BaseModel):
    """A single required capability."""

    model_config = ConfigDict(frozen=True)

    capability: str = Field(min_length=1)

    @model_serializer
    def serialize_capability(self) -> str:
        return self.capability


class AlternativeDependency(BaseModel):
    """Mutually substitutable capabilities, at least one of which is required."""

    model_config = ConfigDict(frozen=True)

    alternatives: Tuple[str, ...]

    @field_validator("alternatives")
    @classmethod
    def check_alternatives(cls, value: Tuple[str, ...]) -> Tuple[str, ...]:
        if not value:
            raise ValueError("alternative dependency list must not be empty")
        if any(not item for item in value):
            raise ValueError("alternative dependency entries must be non-empty strings")
        return value

    @model_serializer
    def serialize_alternatives(self) -> List[str]:
        return list(self.alternatives)


Permission = Union[OneDependency, AlternativeDependency]


def parse_permission(value: Any) -> Permission:
    """Turn a manifest permission entry (string or list of strings) into a variant."""
    if isinstance(value, (OneDependency, AlternativeDependency)):
        return value
    if isinstance(value, str):
        if not value.strip():
            raise ValueError("permission must not be an empty string")
        return OneDependency(capability=value.strip())
    if isinstance(value, (list, tuple)):
        if not value:
            raise ValueError("alternative dependency list must not be empty")
        if not all(isinstance(item, str) for item in value):
            raise ValueError("alternative dependencies must be strings")
        return AlternativeDependency(alternatives=tuple(item.strip() for item in value))
    raise ValueError(f"unsupported permission value: {value!r}")


PermissionField = Annotated[Permission, BeforeValidator(parse_permission)]
Port = Annotated[int, Field(ge=1, le=65535)]


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Container(_CamelModel):
    """One `services:` entry of a manifest. Unknown keys pass through to compose."""

    model_config = ConfigDict(extra="allow")

    name: str = Field(min_length=1)
    image: str = Field(min_length=1)
    port: Optional[Port] = None
    protocol: Literal["http", "https", "tcp", "udp"] = "http"
    external_port: Optional[Port] = None
    primary: bool = False
    hidden_service: bool = False
    provides: List[str] = Field(default_factory=list)

    @property
    def http_capable(self) -> bool:
        return self.port is not None and self.protocol in HTTP_PROTOCOLS

    def passthrough(self) -> Dict[str, Any]:
        return dict(self.model_extra or {})


class ManifestMetadata(_CamelModel):
    id: str = Field(min_length=1)
    name: str
    version: str
    category: str
    tagline: str
    developers: Dict[str, str] = Field(default_factory=dict)
    description: str = ""
    permissions: List[PermissionField] = Field(default_factory=list)
    repo: Dict[str, str] = Field(default_factory=dict)
    support: str = ""
    gallery: Optional[List[str]] = None
    path: Optional[str] = None
    default_username: Optional[str] = None
    default_password: Optional[str] = None
    tor_only: bool = False
    update_containers: Optional[List[str]] = None
    implements: Optional[str] = None
    version_control: Optional[str] = None
    port: Optional[Port] = None
    release_notes: Optional[Dict[str, str]] = None
    supports_https: bool = False

    @field_validator("gallery", "update_containers", "release_notes")
    @classmethod
    def empty_to_none(cls, value):
        return value or None


class AppManifest(BaseModel):
    metadata: ManifestMetadata
    containers: List[Container] = Field(min_length=1)

    @property
    def app_id(self) -> str:
        return self.metadata.id

    def container(self, name: str) -> Optional[Container]:
        return next((item for item in self.containers if item.name == name), None)


class OutputMetadata(_CamelModel):
    id: str
    name: str
    version: str
    category: str
    tagline: str
    developers: Dict[str, str]
    description: str
    permissions: List[PermissionField] = Field(default_factory=list)
    repo: Dict[str, str]
    support: str
    gallery: Optional[List[str]] = None
    path: Optional[str] = None
    default_username: Optional[str] = None
    default_password: Optional[str] = None
    tor_only: bool = False
    update_containers: Optional[List[str]] = None
    implements: Optional[str] = None
    version_control: Optional[str] = None
    compatible: bool
    missing_dependencies: Optional[List[PermissionField]] = None
    port: int
    internal_port: int
    release_notes: Optional[Dict[str, str]] = None
    supports_https: bool
    hidden_services: List[str] = Field(default_factory=list)


class CaddyEntry(_CamelModel):
    model_config = ConfigDict(frozen=True)

    public_port: int
    internal_port: int
    container_name: str
    is_primary: bool


class ResultBundle(_CamelModel):
    model_config = ConfigDict(frozen=True)

    new_tor_entries: str
    new_i2p_entries: str = Field(alias="newI2pEntries")
    caddy_entries: List[CaddyEntry]
    spec: Dict[str, Any]
    metadata: OutputMetadata

    def to_dict(self) -> Dict[str, Any]:
        """Serialized form: camelCase keys, unset optional fields omitted."""
        return self.model_dump(by_alias=True, exclude_none=True, mode="json")
