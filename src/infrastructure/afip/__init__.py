"""AFIP/ARCA web service integration (WSAA, WSFEv1, WSMTXCA, Padron A4)."""

from src.infrastructure.afip.client import ArcaClient
from src.infrastructure.afip.credentials import CredentialManager
from src.infrastructure.afip.gateway import (
    SoapGateway,
    create_http_client,
    resolve_endpoints,
)
from src.infrastructure.afip.signing import CmsSigner, TicketSigner, UnconfiguredSigner

__all__ = [
    "ArcaClient",
    "CmsSigner",
    "CredentialManager",
    "SoapGateway",
    "TicketSigner",
    "UnconfiguredSigner",
    "create_http_client",
    "resolve_endpoints",
]
