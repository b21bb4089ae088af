"""CDM module entrypoint."""

from __future__ import annotations

from dataclasses import dataclass

from pypolaris.cdm.bootstrap import BootstrapAPI
from pypolaris.cdm.client import Client
from pypolaris.cdm.registration import RegistrationAPI


@dataclass(frozen=True)
class CDMOptions:
    """CDM runtime options.

    Attributes:
        timeout_s: Timeout in seconds for each HTTP request.
        allow_insecure_tls: Skip TLS certificate verification. CDM nodes
            commonly present self-signed certificates before bootstrap.
    """

    timeout_s: float = 60.0
    allow_insecure_tls: bool = False


class CDM:
    """CDM API aggregator.

    Example:
        cdm = CDM("10.0.0.10", username="admin", password="secret")
        request_id = cdm.bootstrap.bootstrap_cluster(ctx, config)
        cdm.bootstrap.wait_for_bootstrap(ctx, request_id)
    """

    def __init__(
        self,
        node_ip: str,
        *,
        username: str | None = None,
        password: str | None = None,
        token: str | None = None,
        options: CDMOptions | None = None,
    ) -> None:
        """Initialize CDM facade.

        Args:
            node_ip: Address of a CDM node.
            username: Username for basic authentication.
            password: Password for basic authentication.
            token: Bearer token, takes precedence over username and password.
            options: Runtime options.
        """
        opt = options or CDMOptions()
        if token:
            client = Client.from_token(
                node_ip,
                token,
                allow_insecure_tls=opt.allow_insecure_tls,
                timeout_s=opt.timeout_s,
            )
        else:
            client = Client.from_credentials(
                node_ip,
                username or "",
                password or "",
                allow_insecure_tls=opt.allow_insecure_tls,
                timeout_s=opt.timeout_s,
            )
        self._attach(client)

    @classmethod
    def from_env(cls, options: CDMOptions | None = None) -> CDM:
        """Create a facade from the ``RUBRIK_CDM_*`` environment variables."""
        opt = options or CDMOptions()
        cdm = cls.__new__(cls)
        cdm._attach(Client.from_env(allow_insecure_tls=opt.allow_insecure_tls, timeout_s=opt.timeout_s))
        return cdm

    @classmethod
    def from_client(cls, client: Client) -> CDM:
        """Create a facade around an existing client."""
        cdm = cls.__new__(cls)
        cdm._attach(client)
        return cdm

    def _attach(self, client: Client) -> None:
        self.client = client
        self.bootstrap = BootstrapAPI(client)
        self.registration = RegistrationAPI(client)

    def close(self) -> None:
        self.client.close()
