from pypolaris.cdm.bootstrap import (
    AWSStorageConfig,
    AzureStorageConfig,
    BootstrapAPI,
    CDMStorageConfig,
    ClusterConfig,
    NodeConfig,
    NTPServerConfig,
    NTPSymmetricKey,
)
from pypolaris.cdm.cdm import CDM, CDMOptions
from pypolaris.cdm.client import APIVersion, Client, error_message
from pypolaris.cdm.registration import RegistrationAPI

__all__ = [
    "APIVersion",
    "AWSStorageConfig",
    "AzureStorageConfig",
    "BootstrapAPI",
    "CDM",
    "CDMOptions",
    "CDMStorageConfig",
    "Client",
    "ClusterConfig",
    "NTPServerConfig",
    "NTPSymmetricKey",
    "NodeConfig",
    "RegistrationAPI",
    "error_message",
]
