"""Build CDM settings and cluster configurations from loaded config files.

Example TOML document::

    [cdm]
    node_ip = "10.0.0.10"
    username = "admin"
    password = "env,RUBRIK_CDM_PASSWORD"
    allow_insecure_tls = true

    [cluster]
    name = "cluster-1"
    admin_email = "admin@example.com"
    admin_password = "jsonfile,cluster.admin_password"
    management_gateway = "10.0.0.1"
    management_subnet_mask = "255.255.255.0"
    dns_servers = ["10.0.0.2"]
    ntp_servers = ["pool.ntp.org"]

    [[cluster.nodes]]
    name = "node-1"
    management_ip = "10.0.0.10"

    [cluster.storage]
    type = "aws"
    bucket_name = "cces-bucket"
"""

from __future__ import annotations

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pypolaris.cdm.bootstrap import (
    AWSStorageConfig,
    AzureStorageConfig,
    CDMStorageConfig,
    ClusterConfig,
    NodeConfig,
    NTPServerConfig,
    NTPSymmetricKey,
    StorageConfig,
)
from pypolaris.core.errors import ConfigError


class CDMSettings(BaseModel):
    """Connection settings of a CDM node."""

    model_config = ConfigDict(extra="forbid")

    node_ip: str
    username: str = ""
    password: str = ""
    token: str = ""
    allow_insecure_tls: bool = False
    timeout_s: float = Field(60.0, gt=0)


class _Node(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    management_ip: str


class _SymmetricKey(BaseModel):
    model_config = ConfigDict(extra="forbid")

    key_id: int
    key: str
    key_type: str


class _NTPServer(BaseModel):
    model_config = ConfigDict(extra="forbid")

    server: str
    symmetric_key: Optional[_SymmetricKey] = None


class _Storage(BaseModel):
    model_config = ConfigDict(extra="forbid")

    type: Literal["cdm", "aws", "azure"] = "cdm"
    enable_encryption: bool = False
    enable_immutability: bool = False
    bucket_name: str = ""
    connection_string: str = ""
    container_name: str = ""
    storage_account_name: str = ""
    endpoint_suffix: str = ""
    managed_identity_client_id: str = ""


class _Cluster(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    admin_email: str
    admin_password: str
    management_gateway: str
    management_subnet_mask: str
    nodes: List[_Node] = Field(min_length=1)
    dns_servers: List[str] = Field(default_factory=list)
    dns_search_domains: List[str] = Field(default_factory=list)
    ntp_servers: List[Union[str, _NTPServer]] = Field(default_factory=list)
    storage: _Storage = Field(default_factory=_Storage)


def _format_error(section: str, exc: ValidationError) -> str:
    details = "; ".join(
        f"{'.'.join(str(p) for p in err['loc']) or section}: {err['msg']}" for err in exc.errors()
    )
    return f"invalid [{section}] config: {details}"


def settings_from_dict(data: Dict[str, Any]) -> CDMSettings:
    """Build CDM connection settings from the ``[cdm]`` table.

    Args:
        data: Loaded config document.

    Returns:
        CDMSettings: Validated settings.

    Raises:
        ConfigError: The table is missing or invalid.
    """
    section = data.get("cdm")
    if not isinstance(section, dict):
        raise ConfigError("missing [cdm] config table")
    try:
        settings = CDMSettings.model_validate(section)
    except ValidationError as exc:
        raise ConfigError(_format_error("cdm", exc)) from exc
    if not settings.token and not (settings.username and settings.password):
        raise ConfigError("invalid [cdm] config: token or username and password required")
    return settings


def _storage_config(storage: _Storage) -> StorageConfig:
    if storage.type == "aws":
        if not storage.bucket_name:
            raise ConfigError("invalid [cluster] config: storage.bucket_name required for aws")
        return AWSStorageConfig(
            bucket_name=storage.bucket_name,
            enable_immutability=storage.enable_immutability,
        )
    if storage.type == "azure":
        if not storage.container_name:
            raise ConfigError("invalid [cluster] config: storage.container_name required for azure")
        return AzureStorageConfig(
            connection_string=storage.connection_string,
            container_name=storage.container_name,
            enable_immutability=storage.enable_immutability,
            storage_account_name=storage.storage_account_name,
            endpoint_suffix=storage.endpoint_suffix,
            managed_identity_client_id=storage.managed_identity_client_id,
        )
    return CDMStorageConfig(enable_encryption=storage.enable_encryption)


def _ntp_server(entry: Union[str, _NTPServer]) -> NTPServerConfig:
    if isinstance(entry, str):
        return NTPServerConfig(server=entry)
    key = None
    if entry.symmetric_key is not None:
        key = NTPSymmetricKey(
            key_id=entry.symmetric_key.key_id,
            key=entry.symmetric_key.key,
            key_type=entry.symmetric_key.key_type,
        )
    return NTPServerConfig(server=entry.server, symmetric_key=key)


def cluster_config_from_dict(data: Dict[str, Any]) -> ClusterConfig:
    """Build a bootstrap configuration from the ``[cluster]`` table.

    Args:
        data: Loaded config document.

    Returns:
        ClusterConfig: Cluster configuration.

    Raises:
        ConfigError: The table is missing or invalid.
    """
    section = data.get("cluster")
    if not isinstance(section, dict):
        raise ConfigError("missing [cluster] config table")
    try:
        cluster = _Cluster.model_validate(section)
    except ValidationError as exc:
        raise ConfigError(_format_error("cluster", exc)) from exc

    return ClusterConfig(
        cluster_name=cluster.name,
        cluster_nodes=[NodeConfig(name=n.name, management_ip=n.management_ip) for n in cluster.nodes],
        management_gateway=cluster.management_gateway,
        management_subnet_mask=cluster.management_subnet_mask,
        admin_email=cluster.admin_email,
        admin_password=cluster.admin_password,
        dns_servers=list(cluster.dns_servers),
        dns_search_domains=list(cluster.dns_search_domains),
        ntp_servers=[_ntp_server(entry) for entry in cluster.ntp_servers],
        storage_config=_storage_config(cluster.storage),
    )
