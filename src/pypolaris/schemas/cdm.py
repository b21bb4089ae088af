"""Response payloads returned by the CDM REST API."""

from typing import List, Optional
from uuid import UUID

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class CDMModel(BaseModel):
    """Base model for CDM payloads; unknown fields are ignored."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")


class IsBootstrappedResponse(CDMModel):
    value: bool = False


class BootstrapRequestResponse(CDMModel):
    """Answer to a bootstrap request. ``status`` carries errors on rejection."""

    id: int = 0
    status: str = ""


class BootstrapStatusResponse(CDMModel):
    status: str = ""
    message: str = ""


class NodeRegistrationConfig(CDMModel):
    """Node configuration used when registering a cluster with RSC.

    Dump with ``model_dump(by_alias=True, mode="json")`` to get the wire form.
    """

    id: str = ""
    capacity: str = ""
    cluster_uuid: Optional[UUID] = Field(None, alias="clusterUuid")
    is_entitled: bool = Field(False, alias="isEntitled")
    manufacture_time: str = Field("", alias="manufactureTime")
    platform: str = ""
    serial: str = ""
    system_uuid: Optional[UUID] = Field(None, alias="systemUuid")
    teleport_token: str = Field("", alias="teleportToken")


class NodeDetails(CDMModel):
    """Details of a node used for offline entitlement and registration."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore", coerce_numbers_to_str=True)

    board_serial: str = Field("", alias="boardSerial")
    system_uuid: Optional[UUID] = Field(None, alias="systemUUID")
    node_id: str = Field("", alias="nodeId")
    manufacturing_time: str = Field("", alias="manufacturingTime")
    teleport_token: str = Field("", alias="teleportToken")
    cluster_uuid: Optional[UUID] = Field(None, alias="clusterUuid")
    platform_type: str = Field("", alias="platformType")
    capacity_in_bytes: str = Field("", alias="capacityInBytes")
    is_entitled: bool = Field(False, alias="isEntitled")
    version: str = ""

    def to_node_registration_config(self) -> NodeRegistrationConfig:
        """Convert the node details to a node registration configuration."""
        return NodeRegistrationConfig(
            id=self.node_id,
            capacity=self.capacity_in_bytes,
            cluster_uuid=self.cluster_uuid,
            is_entitled=self.is_entitled,
            manufacture_time=self.manufacturing_time,
            platform=self.platform_type,
            serial=self.board_serial,
            system_uuid=self.system_uuid,
            teleport_token=self.teleport_token,
        )


class OfflineEntitleResponse(CDMModel):
    data: List[NodeDetails] = Field(default_factory=list)


class RegisteredMode(CDMModel):
    result: str = ""


class RegisteredModeResponse(CDMModel):
    # Key casing is not fixed by the API.
    registered_mode: RegisteredMode = Field(
        default_factory=RegisteredMode,
        validation_alias=AliasChoices("registeredMode", "RegisteredMode"),
    )
