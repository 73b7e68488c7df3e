"""Endpoints, namespaces and codes of the AFIP/ARCA web services."""

from typing import Final, Literal

type AfipEnvironment = Literal["homologation", "production"]

# WSAA service names requested in login tickets
WSFE_SERVICE: Final[str] = "wsfe"
WSMTXCA_SERVICE: Final[str] = "wsmtxca"
PADRON_SERVICE: Final[str] = "ws_sr_padron_a4"

ENDPOINTS: Final[dict[str, dict[str, str]]] = {
    "wsaa": {
        "homologation": "https://wsaahomo.afip.gov.ar/ws/services/LoginCms",
        "production": "https://wsaa.afip.gov.ar/ws/services/LoginCms",
    },
    "wsfe": {
        "homologation": "https://wswhomo.afip.gov.ar/wsfev1/service.asmx",
        "production": "https://servicios1.afip.gov.ar/wsfev1/service.asmx",
    },
    "wsmtxca": {
        "homologation": "https://fwshomo.afip.gov.ar/wsmtxca/services/MTXCAService",
        "production": "https://serviciosjava.afip.gob.ar/wsmtxca/services/MTXCAService",
    },
    "padron": {
        "homologation": (
            "https://awshomo.afip.gov.ar/sr-padron/webservices/personaServiceA4"
        ),
        "production": "https://aws.afip.gov.ar/sr-padron/webservices/personaServiceA4",
    },
}

SOAP_ENV_NS: Final[str] = "http://schemas.xmlsoap.org/soap/envelope/"
WSAA_NS: Final[str] = "http://wsaa.view.sua.dvad.gov.ar/"
WSFE_NS: Final[str] = "http://ar.gov.afip.dif.FEV1/"
WSMTXCA_NS: Final[str] = "http://impl.service.wsmtxca.afip.gob.ar/service/"
PADRON_NS: Final[str] = "http://a4.soap.ws.server.puc.sr/"

# Login ticket validity window requested from WSAA
TICKET_WINDOW_MINUTES: Final[int] = 10

INVOICE_TYPE_CODES: Final[dict[str, int]] = {
    "A": 1,
    "B": 6,
    "C": 11,
    "E": 19,
    "NC": 3,
    "ND": 2,
}

# WSFEv1 concept codes
CONCEPT_PRODUCTS: Final[int] = 1

CURRENCY_PESOS: Final[str] = "PES"

# FEParamGet operations exposed by WSFEv1
PARAM_METHODS: Final[frozenset[str]] = frozenset(
    {
        "FEParamGetTiposCbte",
        "FEParamGetTiposConcepto",
        "FEParamGetTiposDoc",
        "FEParamGetTiposIva",
        "FEParamGetTiposMonedas",
        "FEParamGetTiposOpcional",
        "FEParamGetTiposTributos",
        "FEParamGetPtosVenta",
        "FEParamGetCotizacion",
    }
)
