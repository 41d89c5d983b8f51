"""Server configuration models.

A server configuration is immutable and tagged by its transport kind:
``"stdio"`` servers are spawned as subprocesses, ``"streamable-http"``
servers are reached over HTTP. Field names on the wire are camelCase
(``autoConnect``), matching the export document.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

import pydantic
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from ..errors import ValidationError
from .transport import HTTPTransportConfig, StdioTransportConfig, TransportConfig

EXPORT_VERSION = "1.0.0"


class _ServerConfigBase(BaseModel):
    """Fields shared by every transport kind."""

    model_config = ConfigDict(
        frozen=True,
        populate_by_name=True,
        extra="ignore",
    )

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    auto_connect: bool = Field(default=False, alias="autoConnect")

    def dump(self) -> Dict[str, Any]:
        """Serialize with wire field names."""
        return self.model_dump(by_alias=True, exclude_none=True)


class StdioServerConfig(_ServerConfigBase):
    """A server spawned as a subprocess speaking JSON-RPC over stdin/stdout.

    Attributes:
        command: Executable to run.
        args: Command line arguments.
        env: Environment overrides merged over the parent environment.
    """

    type: Literal["stdio"] = "stdio"
    command: str = Field(min_length=1)
    args: List[str] = Field(default_factory=list)
    env: Dict[str, str] = Field(default_factory=dict)

    def to_transport_config(
        self,
        timeout: float = 30.0,
        close_timeout: float = 5.0,
    ) -> StdioTransportConfig:
        return StdioTransportConfig(
            command=self.command,
            args=list(self.args),
            env=dict(self.env),
            timeout=timeout,
            close_timeout=close_timeout,
        )


class HttpServerConfig(_ServerConfigBase):
    """A server reached over the streamable HTTP transport.

    Attributes:
        url: Endpoint URL.
        headers: Extra HTTP headers, e.g. authorization.
    """

    type: Literal["streamable-http"] = "streamable-http"
    url: str = Field(min_length=1)
    headers: Dict[str, str] = Field(default_factory=dict)

    def to_transport_config(
        self,
        timeout: float = 30.0,
        close_timeout: float = 5.0,
    ) -> HTTPTransportConfig:
        return HTTPTransportConfig(
            url=self.url,
            headers=dict(self.headers),
            timeout=timeout,
        )


ServerConfig = Annotated[
    Union[StdioServerConfig, HttpServerConfig],
    Field(discriminator="type"),
]

_server_config_adapter: TypeAdapter[Union[StdioServerConfig, HttpServerConfig]] = TypeAdapter(
    ServerConfig
)

_REQUIRED_BY_TYPE = {
    "stdio": "command",
    "streamable-http": "url",
}


def parse_server_config(data: Any) -> Union[StdioServerConfig, HttpServerConfig]:
    """Validate a raw configuration object.

    Args:
        data: Decoded JSON object.

    Returns:
        The typed server configuration.

    Raises:
        ValidationError: Naming the first missing or invalid field.
    """
    if isinstance(data, (StdioServerConfig, HttpServerConfig)):
        return data
    if not isinstance(data, dict):
        raise ValidationError("Server configuration must be an object")

    for key in ("id", "name", "type"):
        if not data.get(key):
            raise ValidationError(f"Invalid server configuration: {key} is required", field=key)

    kind = data["type"]
    if kind not in _REQUIRED_BY_TYPE:
        raise ValidationError(f"Unsupported server type: {kind}", field="type")

    required = _REQUIRED_BY_TYPE[kind]
    if not data.get(required):
        raise ValidationError(
            f"{required} is required for {kind} servers", field=required
        )

    try:
        return _server_config_adapter.validate_python(data)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != kind)
        raise ValidationError(
            f"Invalid server configuration: {location or 'config'}: {first.get('msg')}",
            field=location or None,
        ) from e


def replace_server_config(
    config: Union[StdioServerConfig, HttpServerConfig],
    **changes: Any,
) -> Union[StdioServerConfig, HttpServerConfig]:
    """Return a re-validated copy of ``config`` with ``changes`` applied.

    The id cannot be changed; changing ``type`` switches the variant.
    """
    if "id" in changes and changes["id"] != config.id:
        raise ValidationError("Server id cannot be changed", field="id")
    data = config.dump()
    for key, value in changes.items():
        if key == "auto_connect":
            key = "autoConnect"
        data[key] = value
    return parse_server_config(data)


class ExportDocument(BaseModel):
    """Portable list of server configurations."""

    model_config = ConfigDict(populate_by_name=True)

    version: str = EXPORT_VERSION
    servers: List[ServerConfig] = Field(default_factory=list)
    exported_at: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        alias="exportedAt",
    )

    def to_json(self, indent: Optional[int] = 2) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=indent)


def parse_export_document(text: str) -> ExportDocument:
    """Parse an export document, raising ValidationError when malformed."""
    try:
        return ExportDocument.model_validate_json(text)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        raise ValidationError(f"Invalid import file: {first.get('msg')}") from e


__all__ = [
    "EXPORT_VERSION",
    "ExportDocument",
    "HttpServerConfig",
    "ServerConfig",
    "StdioServerConfig",
    "TransportConfig",
    "parse_export_document",
    "parse_server_config",
    "replace_server_config",
]
