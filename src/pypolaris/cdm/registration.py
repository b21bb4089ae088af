"""CDM cluster registration operations."""

from __future__ import annotations

import logging
from typing import List

from pydantic import ValidationError

from pypolaris.cdm.client import APIVersion, Client, error_message
from pypolaris.core.context import Context
from pypolaris.core.errors import APIError, RequestFailedError, ResponseDecodeError
from pypolaris.schemas.cdm import NodeDetails, OfflineEntitleResponse, RegisteredModeResponse

OFFLINE_ENTITLE_ENDPOINT = "/cluster/me/offline_entitle"
REGISTERED_MODE_ENDPOINT = "/cluster/me/registered_mode"


class RegistrationAPI:
    """Registration API calls to a CDM cluster."""

    def __init__(self, client: Client) -> None:
        self._client = client
        self._logger = logging.getLogger(__name__)

    def offline_entitle(self, ctx: Context) -> List[NodeDetails]:
        """Return the node details needed for offline entitlement.

        Args:
            ctx: Cancellation scope.

        Returns:
            List[NodeDetails]: One entry per cluster node.

        Raises:
            APIError: The request failed or was rejected.
            ResponseDecodeError: The response body was invalid.
        """
        try:
            body, code = self._client.get(ctx, APIVersion.V1, OFFLINE_ENTITLE_ENDPOINT)
        except RequestFailedError as exc:
            raise APIError(f'failed GET request "{OFFLINE_ENTITLE_ENDPOINT}": {exc}') from exc
        if code != 200:
            raise APIError(
                f'failed GET request "{OFFLINE_ENTITLE_ENDPOINT}": {error_message(body, code)}',
                status_code=code,
            )

        try:
            payload = OfflineEntitleResponse.model_validate_json(body)
        except ValidationError as exc:
            raise ResponseDecodeError(f"failed to unmarshal offline entitle response: {exc}") from exc
        self._logger.debug("offline entitle returned %d nodes", len(payload.data))
        return payload.data

    def set_registered_mode(self, ctx: Context, auth_token: str) -> str:
        """Set the registered mode of the cluster using an RSC auth token.

        Args:
            ctx: Cancellation scope.
            auth_token: Registration auth token.

        Returns:
            str: The mode set, e.g. ``Hybrid``.

        Raises:
            APIError: The request failed or was rejected.
            ResponseDecodeError: The response body was invalid.
        """
        try:
            body, code = self._client.put(
                ctx,
                APIVersion.INTERNAL,
                REGISTERED_MODE_ENDPOINT,
                {"authToken": auth_token},
            )
        except RequestFailedError as exc:
            raise APIError(f'failed PUT request "{REGISTERED_MODE_ENDPOINT}": {exc}') from exc
        if code != 200:
            raise APIError(
                f'failed PUT request "{REGISTERED_MODE_ENDPOINT}": {error_message(body, code)}',
                status_code=code,
            )

        try:
            payload = RegisteredModeResponse.model_validate_json(body)
        except ValidationError as exc:
            raise ResponseDecodeError(f"failed to unmarshal registered mode response: {exc}") from exc
        return payload.registered_mode.result
