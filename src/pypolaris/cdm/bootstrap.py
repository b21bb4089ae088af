"""CDM cluster bootstrap operations.

The cluster can reboot at any time while it is being bootstrapped. Every call
that talks to the cluster therefore polls with a grace period, ``timeout``,
during which failed requests are retried every ``wait_time`` seconds.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from typing import Any, Dict, List

from pydantic import ValidationError

from pypolaris.cdm.client import APIVersion, Client, error_message, status_text
from pypolaris.core.context import Context
from pypolaris.core.errors import (
    APIError,
    BootstrapError,
    Canceled,
    PolarisError,
    PreconditionFailedError,
    RequestFailedError,
    ResponseDecodeError,
)
from pypolaris.core.poll import ProbeStatus, wait_until_ready, wait_until_terminal
from pypolaris.schemas.cdm import BootstrapRequestResponse, BootstrapStatusResponse, IsBootstrappedResponse

BOOTSTRAP_ENDPOINT = "/cluster/me/bootstrap"
IS_BOOTSTRAPPED_ENDPOINT = "/node_management/is_bootstrapped"

DEFAULT_TIMEOUT_S = 240.0
DEFAULT_WAIT_TIME_S = 10.0
DEFAULT_BOOTSTRAP_WAIT_TIME_S = 30.0


@dataclass(frozen=True)
class NodeConfig:
    """Node of the cluster to bootstrap.

    Attributes:
        name: Node name.
        management_ip: Management interface address.
    """

    name: str
    management_ip: str


@dataclass(frozen=True)
class NTPSymmetricKey:
    key_id: int
    key: str
    key_type: str

    def to_payload(self) -> Dict[str, Any]:
        return {"keyId": self.key_id, "key": self.key, "keyType": self.key_type}


@dataclass(frozen=True)
class NTPServerConfig:
    server: str
    symmetric_key: NTPSymmetricKey | None = None

    def to_payload(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"server": self.server}
        if self.symmetric_key is not None:
            payload["symmetricKey"] = self.symmetric_key.to_payload()
        return payload


class StorageConfig:
    """Kind of Rubrik cluster to bootstrap."""

    def cloud_storage_location(self) -> Dict[str, Any] | None:
        """Return the storage location wrapped per provider, as CDM expects it."""
        return None


@dataclass(frozen=True)
class CDMStorageConfig(StorageConfig):
    """Physical Rubrik cluster.

    Attributes:
        enable_encryption: Enable software encryption at rest. Only physical
            clusters support it.
    """

    enable_encryption: bool = False


@dataclass(frozen=True)
class AWSStorageConfig(StorageConfig):
    """Cloud Cluster Elastic Storage (CCES) on AWS."""

    bucket_name: str
    enable_immutability: bool = False

    def cloud_storage_location(self) -> Dict[str, Any]:
        return {
            "awsStorageConfig": {
                "bucketName": self.bucket_name,
                "isObjectLockingEnabled": self.enable_immutability,
            }
        }


@dataclass(frozen=True)
class AzureStorageConfig(StorageConfig):
    """Cloud Cluster Elastic Storage (CCES) on Azure."""

    connection_string: str
    container_name: str
    enable_immutability: bool = False
    storage_account_name: str = ""
    endpoint_suffix: str = ""
    managed_identity_client_id: str = ""

    def cloud_storage_location(self) -> Dict[str, Any]:
        return {
            "azureStorageConfig": {
                "connectionString": self.connection_string,
                "containerName": self.container_name,
                "isVersionLevelImmutabilitySupported": self.enable_immutability,
                "storageAccountName": self.storage_account_name,
                "endpointSuffix": self.endpoint_suffix,
                "managedIdentityClientId": self.managed_identity_client_id,
            }
        }


@dataclass
class ClusterConfig:
    """Configuration of the cluster to bootstrap.

    The kind of cluster is selected by ``storage_config``: ``CDMStorageConfig``
    (or ``None``) bootstraps a physical cluster, ``AWSStorageConfig`` and
    ``AzureStorageConfig`` bootstrap a CCES cluster on the respective cloud.

    Attributes:
        cluster_name: Cluster name.
        cluster_nodes: Nodes to include in the cluster.
        management_gateway: Management network gateway.
        management_subnet_mask: Management network subnet mask.
        admin_email: Email of the admin user.
        admin_password: Password of the admin user.
        dns_servers: DNS name servers.
        dns_search_domains: DNS search domains.
        ntp_servers: NTP servers.
        storage_config: Kind of cluster to bootstrap.
    """

    cluster_name: str = ""
    cluster_nodes: List[NodeConfig] = field(default_factory=list)
    management_gateway: str = ""
    management_subnet_mask: str = ""
    admin_email: str = ""
    admin_password: str = ""
    dns_servers: List[str] = field(default_factory=list)
    dns_search_domains: List[str] = field(default_factory=list)
    ntp_servers: List[NTPServerConfig] = field(default_factory=list)
    storage_config: StorageConfig | None = None

    def to_payload(self) -> Dict[str, Any]:
        """Transform the configuration into a CDM bootstrap request body.

        Returns:
            Dict[str, Any]: JSON-serialisable request body.
        """
        enable_encryption = False
        if isinstance(self.storage_config, CDMStorageConfig):
            enable_encryption = self.storage_config.enable_encryption

        payload: Dict[str, Any] = {
            "name": self.cluster_name,
            "enableSoftwareEncryptionAtRest": enable_encryption,
            "adminUserInfo": {
                "id": "admin",
                "emailAddress": self.admin_email,
                "password": self.admin_password,
            },
            "dnsNameservers": list(self.dns_servers),
            "dnsSearchDomains": list(self.dns_search_domains),
            "ntpServerConfigs": [ntp.to_payload() for ntp in self.ntp_servers],
            "nodeConfigs": {
                node.name: {
                    "managementIpConfig": {
                        "address": node.management_ip,
                        "netmask": self.management_subnet_mask,
                        "gateway": self.management_gateway,
                    }
                }
                for node in self.cluster_nodes
            },
        }
        if self.storage_config is not None:
            location = self.storage_config.cloud_storage_location()
            if location is not None:
                payload["cloudStorageLocation"] = location
        return payload


class BootstrapAPI:
    """Bootstrap API calls to a CDM node.

    Bootstrapping a Rubrik cluster requires a single node to have its
    management interface configured.
    """

    def __init__(self, client: Client) -> None:
        """Initialize the API.

        Args:
            client: CDM client of the node to bootstrap.
        """
        self._client = client
        self._logger = logging.getLogger(__name__)

    def bootstrap_cluster(
        self,
        ctx: Context,
        config: ClusterConfig,
        *,
        timeout: float = DEFAULT_TIMEOUT_S,
        wait_time: float = DEFAULT_WAIT_TIME_S,
    ) -> int:
        """Start bootstrapping the cluster.

        To wait for the bootstrap to finish, pass the returned request id to
        ``wait_for_bootstrap``.

        Args:
            ctx: Cancellation scope.
            config: Cluster configuration.
            timeout: Seconds to wait for an unresponsive cluster.
            wait_time: Seconds between status requests.

        Returns:
            int: Bootstrap request id.

        Raises:
            BootstrapError: The bootstrap status could not be determined.
            PreconditionFailedError: The cluster is already bootstrapped.
            APIError: The bootstrap request was rejected.
            ResponseDecodeError: The accepted request had an invalid body.
            Canceled: ``ctx`` was canceled.
        """
        try:
            bootstrapped = self.is_bootstrapped(ctx, timeout=timeout, wait_time=wait_time)
        except Canceled:
            raise
        except PolarisError as exc:
            raise BootstrapError(f"failed to check cluster bootstrap status: {exc}") from exc
        if bootstrapped:
            raise PreconditionFailedError("cluster is already bootstrapped")

        try:
            body, code = self._client.post(ctx, APIVersion.INTERNAL, BOOTSTRAP_ENDPOINT, config.to_payload())
        except RequestFailedError as exc:
            raise APIError(f'failed POST request "{BOOTSTRAP_ENDPOINT}": {exc}') from exc

        # Rejections may carry a reason in an otherwise malformed body.
        bootstrap: BootstrapRequestResponse | None = None
        decode_error: ValidationError | None = None
        try:
            bootstrap = BootstrapRequestResponse.model_validate_json(body)
        except ValidationError as exc:
            decode_error = exc

        if code != 202:
            msg = f"{status_text(code)} ({code})"
            if bootstrap is not None and bootstrap.status:
                msg = f"{msg}: {bootstrap.status}"
            raise APIError(f'failed POST request "{BOOTSTRAP_ENDPOINT}": {msg}', status_code=code)

        if bootstrap is None:
            raise ResponseDecodeError(f"failed to unmarshal bootstrap status: {decode_error}")

        self._logger.info("bootstrap of cluster %r started, request_id=%s", config.cluster_name, bootstrap.id)
        return bootstrap.id

    def is_bootstrapped(
        self,
        ctx: Context,
        *,
        timeout: float = DEFAULT_TIMEOUT_S,
        wait_time: float = DEFAULT_WAIT_TIME_S,
    ) -> bool:
        """Return True if the cluster has been bootstrapped.

        Args:
            ctx: Cancellation scope.
            timeout: Seconds to wait for an unresponsive cluster.
            wait_time: Seconds between status requests.

        Returns:
            bool: Bootstrap status reported by the cluster.

        Raises:
            TimeoutExceededError: The cluster did not answer within ``timeout``.
            ResponseDecodeError: The cluster answered with an invalid body.
            Canceled: ``ctx`` was canceled.
        """
        result: Dict[str, bool] = {}

        def probe(probe_ctx: Context) -> bool:
            body, code = self._client.get(probe_ctx, APIVersion.INTERNAL, IS_BOOTSTRAPPED_ENDPOINT)
            if code != 200:
                raise APIError(error_message(body, code), status_code=code)
            try:
                result["value"] = IsBootstrappedResponse.model_validate_json(body).value
            except ValidationError as exc:
                raise ResponseDecodeError(f"failed to unmarshal bootstrap status: {exc}") from exc
            return True

        wait_until_ready(
            ctx,
            probe,
            grace_timeout=timeout,
            poll_interval=wait_time,
            description="bootstrap status",
        )
        return result["value"]

    def wait_for_bootstrap(
        self,
        ctx: Context,
        request_id: int,
        *,
        timeout: float = DEFAULT_TIMEOUT_S,
        wait_time: float = DEFAULT_BOOTSTRAP_WAIT_TIME_S,
    ) -> ProbeStatus:
        """Block until the bootstrap of the cluster succeeds or fails.

        Args:
            ctx: Cancellation scope.
            request_id: Id returned by ``bootstrap_cluster``.
            timeout: Seconds to wait for an unresponsive cluster.
            wait_time: Seconds between status requests.

        Returns:
            ProbeStatus: Final status of the bootstrap.

        Raises:
            TerminalFailureError: The bootstrap failed.
            TimeoutExceededError: The cluster did not answer within ``timeout``.
            Canceled: ``ctx`` was canceled.
        """
        endpoint = f"{BOOTSTRAP_ENDPOINT}?request_id={request_id}"

        def probe(probe_ctx: Context) -> ProbeStatus:
            body, code = self._client.get(probe_ctx, APIVersion.INTERNAL, endpoint)
            if code != 200:
                raise APIError(error_message(body, code), status_code=code)
            try:
                status = BootstrapStatusResponse.model_validate_json(body)
            except ValidationError as exc:
                raise ResponseDecodeError(f"failed to unmarshal bootstrap status: {exc}") from exc

            if status.status == "IN_PROGRESS":
                return ProbeStatus.in_progress(status.message)
            if status.status in ("FAILURE", "FAILED"):
                return ProbeStatus.failure(status.message)
            return ProbeStatus.success(status.message)

        return wait_until_terminal(
            ctx,
            probe,
            grace_timeout=timeout,
            poll_interval=wait_time,
            description="bootstrap",
        )
