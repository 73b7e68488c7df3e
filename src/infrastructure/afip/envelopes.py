"""SOAP envelope builders and response parsers for the AFIP/ARCA services.

Builders return serialized XML bytes. Parsers accept the raw response body,
detect SOAP faults and return the typed results of
``src.infrastructure.afip.schemas``. Element lookups ignore namespaces since
the services are inconsistent about qualifying response elements.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import TYPE_CHECKING, Any

from lxml import etree

from src.infrastructure.afip.constants import (
    PADRON_NS,
    SOAP_ENV_NS,
    TICKET_WINDOW_MINUTES,
    WSAA_NS,
    WSFE_NS,
    WSMTXCA_NS,
)
from src.infrastructure.afip.schemas import (
    CaeAuthorizationResult,
    Credential,
    InvoiceAuthorizationRequest,
    InvoiceRecord,
    ParamResult,
    RemoteError,
    ServiceStatus,
    TaxpayerRecord,
)

if TYPE_CHECKING:
    from collections.abc import Iterable

type Element = etree._Element


class MalformedResponseError(ValueError):
    """The response body is not the XML document the operation returns."""


class SoapFault(Exception):
    """A SOAP Fault returned instead of an operation response."""

    def __init__(self, code: str, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"{code}: {message}")


# Building


def _envelope(prefix: str, namespace: str) -> tuple[Element, Element]:
    envelope = etree.Element(
        etree.QName(SOAP_ENV_NS, "Envelope"),
        nsmap={"soapenv": SOAP_ENV_NS, prefix: namespace},
    )
    etree.SubElement(envelope, etree.QName(SOAP_ENV_NS, "Header"))
    body = etree.SubElement(envelope, etree.QName(SOAP_ENV_NS, "Body"))
    return envelope, body


def _serialize(root: Element) -> bytes:
    return etree.tostring(root, xml_declaration=True, encoding="utf-8")


def _sub(
    parent: Element, tag: str | etree.QName, text: object | None = None
) -> Element:
    element = etree.SubElement(parent, tag)
    if text is not None:
        element.text = str(text)
    return element


def _amount(value: float) -> str:
    return f"{value:.2f}"


def _afip_date(value: date) -> str:
    return value.strftime("%Y%m%d")


def build_login_ticket_request(
    service: str, now: datetime, unique_id: int | None = None
) -> bytes:
    """Build the WSAA login ticket request (TRA) to be signed.

    Args:
        service: WSAA service name (wsfe, wsmtxca, ws_sr_padron_a4).
        now: Current aware time.
        unique_id: Ticket identifier, defaults to the epoch seconds of ``now``.

    Returns:
        bytes: The serialized loginTicketRequest document.
    """
    window = timedelta(minutes=TICKET_WINDOW_MINUTES)
    root = etree.Element("loginTicketRequest", version="1.0")
    header = _sub(root, "header")
    if unique_id is None:
        unique_id = int(now.timestamp())
    _sub(header, "uniqueId", unique_id)
    _sub(header, "generationTime", (now - window).isoformat(timespec="seconds"))
    _sub(header, "expirationTime", (now + window).isoformat(timespec="seconds"))
    _sub(root, "service", service)
    return _serialize(root)


def build_login_cms(cms_b64: str) -> bytes:
    """Build the WSAA loginCms envelope carrying a signed ticket request."""
    envelope, body = _envelope("wsaa", WSAA_NS)
    login = _sub(body, etree.QName(WSAA_NS, "loginCms"))
    _sub(login, etree.QName(WSAA_NS, "in0"), cms_b64)
    return _serialize(envelope)


def _wsfe_auth(parent: Element, credential: Credential, cuit: str) -> None:
    auth = _sub(parent, etree.QName(WSFE_NS, "Auth"))
    _sub(auth, etree.QName(WSFE_NS, "Token"), credential.token)
    _sub(auth, etree.QName(WSFE_NS, "Sign"), credential.sign)
    _sub(auth, etree.QName(WSFE_NS, "Cuit"), cuit)


def build_fecae_solicitar(
    credential: Credential, cuit: str, request: InvoiceAuthorizationRequest
) -> bytes:
    """Build a WSFEv1 FECAESolicitar envelope for one invoice."""
    envelope, body = _envelope("ar", WSFE_NS)

    def ar(tag: str) -> etree.QName:
        return etree.QName(WSFE_NS, tag)

    operation = _sub(body, ar("FECAESolicitar"))
    _wsfe_auth(operation, credential, cuit)
    fe_req = _sub(operation, ar("FeCAEReq"))

    header = _sub(fe_req, ar("FeCabReq"))
    _sub(header, ar("CantReg"), 1)
    _sub(header, ar("PtoVta"), request.point_of_sale)
    _sub(header, ar("CbteTipo"), request.invoice_type)

    detail = _sub(_sub(fe_req, ar("FeDetReq")), ar("FECAEDetRequest"))
    _sub(detail, ar("Concepto"), request.concept)
    _sub(detail, ar("DocTipo"), request.doc_type)
    _sub(detail, ar("DocNro"), request.doc_number)
    _sub(detail, ar("CbteDesde"), request.number_from)
    _sub(detail, ar("CbteHasta"), request.number_to)
    _sub(detail, ar("CbteFch"), _afip_date(request.invoice_date))
    _sub(detail, ar("ImpTotal"), _amount(request.total))
    _sub(detail, ar("ImpTotConc"), _amount(request.not_taxed_amount))
    _sub(detail, ar("ImpNeto"), _amount(request.net_amount))
    _sub(detail, ar("ImpOpEx"), _amount(request.exempt_amount))
    _sub(detail, ar("ImpTrib"), _amount(request.other_taxes_amount))
    _sub(detail, ar("ImpIVA"), _amount(request.vat_amount))
    # Service periods are mandatory for concepts other than products
    if request.service_from and request.service_to and request.payment_due:
        _sub(detail, ar("FchServDesde"), _afip_date(request.service_from))
        _sub(detail, ar("FchServHasta"), _afip_date(request.service_to))
        _sub(detail, ar("FchVtoPago"), _afip_date(request.payment_due))
    _sub(detail, ar("MonId"), request.currency)
    _sub(detail, ar("MonCotiz"), request.exchange_rate)

    if request.other_taxes:
        taxes = _sub(detail, ar("Tributos"))
        for tax in request.other_taxes:
            item = _sub(taxes, ar("Tributo"))
            _sub(item, ar("Id"), tax.tax_id)
            _sub(item, ar("Desc"), tax.description)
            _sub(item, ar("BaseImp"), _amount(tax.base_amount))
            _sub(item, ar("Alic"), _amount(tax.rate))
            _sub(item, ar("Importe"), _amount(tax.amount))

    if request.vat_rates:
        vat = _sub(detail, ar("Iva"))
        for rate in request.vat_rates:
            item = _sub(vat, ar("AlicIva"))
            _sub(item, ar("Id"), rate.rate_id)
            _sub(item, ar("BaseImp"), _amount(rate.base_amount))
            _sub(item, ar("Importe"), _amount(rate.amount))

    return _serialize(envelope)


def build_fecomp_consultar(
    credential: Credential,
    cuit: str,
    invoice_type: int,
    point_of_sale: int,
    invoice_number: int,
) -> bytes:
    """Build a WSFEv1 FECompConsultar envelope."""
    envelope, body = _envelope("ar", WSFE_NS)
    operation = _sub(body, etree.QName(WSFE_NS, "FECompConsultar"))
    _wsfe_auth(operation, credential, cuit)
    query = _sub(operation, etree.QName(WSFE_NS, "FeCompConsReq"))
    _sub(query, etree.QName(WSFE_NS, "CbteTipo"), invoice_type)
    _sub(query, etree.QName(WSFE_NS, "PtoVta"), point_of_sale)
    _sub(query, etree.QName(WSFE_NS, "CbteNro"), invoice_number)
    return _serialize(envelope)


def build_param_get(
    credential: Credential, cuit: str, method: str, params: dict[str, Any] | None = None
) -> bytes:
    """Build a WSFEv1 FEParamGet* envelope with optional extra parameters."""
    envelope, body = _envelope("ar", WSFE_NS)
    operation = _sub(body, etree.QName(WSFE_NS, method))
    _wsfe_auth(operation, credential, cuit)
    for name, value in (params or {}).items():
        _sub(operation, etree.QName(WSFE_NS, name), value)
    return _serialize(envelope)


def build_fedummy() -> bytes:
    """Build the unauthenticated WSFEv1 FEDummy envelope."""
    envelope, body = _envelope("ar", WSFE_NS)
    _sub(body, etree.QName(WSFE_NS, "FEDummy"))
    return _serialize(envelope)


def build_wsmtxca_autorizar(
    credential: Credential, cuit: str, request: InvoiceAuthorizationRequest
) -> bytes:
    """Build a WSMTXCA autorizarComprobante envelope."""
    envelope, body = _envelope("ser", WSMTXCA_NS)
    operation = _sub(body, etree.QName(WSMTXCA_NS, "autorizarComprobanteRequest"))

    auth = _sub(operation, "authRequest")
    _sub(auth, "token", credential.token)
    _sub(auth, "sign", credential.sign)
    _sub(auth, "cuitRepresentada", cuit)

    invoice = _sub(operation, "comprobanteCAERequest")
    _sub(invoice, "codigoTipoComprobante", request.invoice_type)
    _sub(invoice, "numeroPuntoVenta", request.point_of_sale)
    _sub(invoice, "numeroComprobante", request.number_from)
    _sub(invoice, "fechaEmision", request.invoice_date.isoformat())
    _sub(invoice, "codigoTipoDocumento", request.doc_type)
    _sub(invoice, "numeroDocumento", request.doc_number)
    _sub(invoice, "importeTotal", _amount(request.total))
    _sub(invoice, "importeNoGravado", _amount(request.not_taxed_amount))
    _sub(invoice, "importeGravado", _amount(request.net_amount))
    _sub(invoice, "importeExento", _amount(request.exempt_amount))
    _sub(invoice, "codigoMoneda", request.currency)
    _sub(invoice, "cotizacionMoneda", request.exchange_rate)
    _sub(invoice, "codigoConcepto", request.concept)

    if request.vat_rates:
        subtotals = _sub(invoice, "arraySubtotalesIVA")
        for rate in request.vat_rates:
            subtotal = _sub(subtotals, "subtotalIVA")
            _sub(subtotal, "codigo", rate.rate_id)
            _sub(subtotal, "importe", _amount(rate.amount))

    return _serialize(envelope)


def build_get_persona(credential: Credential, cuit: str, person_cuit: str) -> bytes:
    """Build a Padron A4 getPersona envelope."""
    envelope, body = _envelope("a4", PADRON_NS)
    operation = _sub(body, etree.QName(PADRON_NS, "getPersona"))
    _sub(operation, "token", credential.token)
    _sub(operation, "sign", credential.sign)
    _sub(operation, "cuitRepresentada", cuit)
    _sub(operation, "idPersona", person_cuit)
    return _serialize(envelope)


# Parsing


def parse_document(content: bytes | str) -> Element:
    """Parse a response body into an element tree.

    Args:
        content: Raw response body.

    Returns:
        Element: The document root.

    Raises:
        MalformedResponseError: If the body is empty or not well-formed XML.
    """
    if not content or not content.strip():
        msg = "Empty response body"
        raise MalformedResponseError(msg)
    raw = content.encode("utf-8") if isinstance(content, str) else content
    parser = etree.XMLParser(resolve_entities=False, no_network=True)
    try:
        return etree.fromstring(raw, parser)
    except etree.XMLSyntaxError as e:
        msg = f"Response is not well-formed XML: {e}"
        raise MalformedResponseError(msg) from e


def find_fault(root: Element) -> SoapFault | None:
    """Return the SOAP fault carried by a response, if any."""
    fault = root.find(".//{*}Fault")
    if fault is None:
        return None
    return SoapFault(
        _text(fault, "faultcode") or "soap:Server",
        _text(fault, "faultstring") or "Unspecified SOAP fault",
    )


def _find(parent: Element, name: str) -> Element | None:
    return parent.find(f".//{{*}}{name}")


def _text(parent: Element, name: str) -> str | None:
    element = _find(parent, name)
    if element is None or element.text is None:
        return None
    return element.text.strip() or None


def _child_text(parent: Element, name: str) -> str | None:
    element = parent.find(f"{{*}}{name}")
    if element is None or element.text is None:
        return None
    return element.text.strip() or None


def _int(value: str | None) -> int | None:
    if value in (None, ""):
        return None
    try:
        return int(value)
    except ValueError as e:
        msg = f"Invalid integer field {value!r}"
        raise MalformedResponseError(msg) from e


def _float(value: str | None) -> float | None:
    if value in (None, ""):
        return None
    try:
        return float(value)
    except ValueError as e:
        msg = f"Invalid amount field {value!r}"
        raise MalformedResponseError(msg) from e


def _code(value: str | None) -> int | str:
    if value is None:
        return ""
    return int(value) if value.lstrip("-").isdigit() else value


def parse_afip_date(value: str | None) -> date | None:
    """Parse a YYYYMMDD (WSFEv1) or YYYY-MM-DD (WSMTXCA) date.

    Raises:
        MalformedResponseError: If the value is not a valid date.
    """
    if not value:
        return None
    value = value.strip()
    fmt = "%Y-%m-%d" if "-" in value else "%Y%m%d"
    try:
        return datetime.strptime(value, fmt).date()  # noqa: DTZ007
    except ValueError as e:
        msg = f"Invalid date field {value!r}"
        raise MalformedResponseError(msg) from e


def _operation_result(root: Element, name: str) -> Element:
    result = _find(root, name)
    if result is None:
        msg = f"Response has no {name} element"
        raise MalformedResponseError(msg)
    return result


def _remote_errors(
    parent: Element, container: str, item: str, code: str, message: str
) -> list[RemoteError]:
    errors: list[RemoteError] = []
    for holder in parent.iterfind(f"{{*}}{container}"):
        errors.extend(
            RemoteError(
                code=_code(_child_text(entry, code)),
                message=_child_text(entry, message) or "",
            )
            for entry in holder.iterfind(f"{{*}}{item}")
        )
    return errors


def _wsfe_errors(result: Element) -> list[RemoteError]:
    return _remote_errors(result, "Errors", "Err", "Code", "Msg")


def parse_login_cms_response(content: bytes | str, service: str) -> Credential:
    """Parse a WSAA loginCms response into a Credential.

    The loginCmsReturn element carries the login ticket response as an
    escaped XML document, which is parsed in turn.

    Raises:
        SoapFault: If WSAA answered with a fault.
        MalformedResponseError: If the ticket cannot be read.
    """
    root = parse_document(content)
    if fault := find_fault(root):
        raise fault

    ticket_xml = _text(root, "loginCmsReturn")
    if ticket_xml is None:
        msg = "WSAA response has no loginCmsReturn"
        raise MalformedResponseError(msg)
    ticket = parse_document(ticket_xml)

    token = _text(ticket, "token")
    sign = _text(ticket, "sign")
    generation = _text(ticket, "generationTime")
    expiration = _text(ticket, "expirationTime")
    if not (token and sign and generation and expiration):
        msg = "Login ticket response is missing credentials or validity times"
        raise MalformedResponseError(msg)

    try:
        return Credential(
            service_name=service,
            token=token,
            sign=sign,
            generation_time=datetime.fromisoformat(generation),
            expiration_time=datetime.fromisoformat(expiration),
        )
    except ValueError as e:
        msg = f"Invalid ticket validity times: {e}"
        raise MalformedResponseError(msg) from e


def parse_fecae_solicitar(content: bytes | str) -> CaeAuthorizationResult:
    """Parse a WSFEv1 FECAESolicitar response."""
    root = parse_document(content)
    if fault := find_fault(root):
        raise fault
    result = _operation_result(root, "FECAESolicitarResult")

    parsed = CaeAuthorizationResult(errors=_wsfe_errors(result))
    header = _find(result, "FeCabResp")
    if header is not None:
        parsed.result = _child_text(header, "Resultado")
        parsed.process_date = _child_text(header, "FchProceso")

    detail = _find(result, "FECAEDetResponse")
    if detail is not None:
        # Detail verdict is authoritative for single-invoice requests
        parsed.result = _child_text(detail, "Resultado") or parsed.result
        parsed.cae = _child_text(detail, "CAE")
        parsed.cae_expiration = parse_afip_date(_child_text(detail, "CAEFchVto"))
        parsed.number_from = _int(_child_text(detail, "CbteDesde"))
        parsed.number_to = _int(_child_text(detail, "CbteHasta"))
        parsed.observations = _remote_errors(
            detail, "Observaciones", "Obs", "Code", "Msg"
        )
    return parsed


def parse_fecomp_consultar(content: bytes | str) -> InvoiceRecord:
    """Parse a WSFEv1 FECompConsultar response."""
    root = parse_document(content)
    if fault := find_fault(root):
        raise fault
    result = _operation_result(root, "FECompConsultarResult")

    record = InvoiceRecord(errors=_wsfe_errors(result))
    found = result.find("{*}ResultGet")
    if found is None:
        return record

    record.found = True
    record.concept = _int(_child_text(found, "Concepto"))
    record.doc_type = _int(_child_text(found, "DocTipo"))
    record.doc_number = _child_text(found, "DocNro")
    record.number_from = _int(_child_text(found, "CbteDesde"))
    record.number_to = _int(_child_text(found, "CbteHasta"))
    record.invoice_date = parse_afip_date(_child_text(found, "CbteFch"))
    record.total = _float(_child_text(found, "ImpTotal"))
    record.cae = _child_text(found, "CodAutorizacion") or _child_text(found, "CAE")
    record.cae_expiration = parse_afip_date(
        _child_text(found, "FchVto") or _child_text(found, "CAEFchVto")
    )
    record.emission_type = _child_text(found, "EmisionTipo")
    return record


def _element_to_dict(element: Element) -> dict[str, Any]:
    data: dict[str, Any] = {}
    for child in element:
        key = etree.QName(child).localname
        if len(child):
            data[key] = _element_to_dict(child)
        else:
            data[key] = (child.text or "").strip()
    return data


def parse_param_get(content: bytes | str, method: str) -> ParamResult:
    """Parse a WSFEv1 FEParamGet* response into a list of records."""
    root = parse_document(content)
    if fault := find_fault(root):
        raise fault
    result = _operation_result(root, f"{method}Result")

    parsed = ParamResult(method=method, errors=_wsfe_errors(result))
    result_get = result.find("{*}ResultGet")
    if result_get is not None:
        children: Iterable[Element] = list(result_get)
        # Lists wrap each record in a typed element; single values do not
        if all(len(child) for child in children):
            parsed.items = [_element_to_dict(child) for child in children]
        else:
            parsed.items = [_element_to_dict(result_get)]
    return parsed


def parse_fedummy(content: bytes | str) -> ServiceStatus:
    """Parse a WSFEv1 FEDummy response."""
    root = parse_document(content)
    if fault := find_fault(root):
        raise fault
    result = _operation_result(root, "FEDummyResult")
    return ServiceStatus(
        app_server=_child_text(result, "AppServer"),
        db_server=_child_text(result, "DbServer"),
        auth_server=_child_text(result, "AuthServer"),
    )


def parse_wsmtxca_autorizar(content: bytes | str) -> CaeAuthorizationResult:
    """Parse a WSMTXCA autorizarComprobante response."""
    root = parse_document(content)
    if fault := find_fault(root):
        raise fault
    response = _operation_result(root, "autorizarComprobanteResponse")

    parsed = CaeAuthorizationResult(
        result=_text(response, "resultado"),
        errors=_remote_errors(
            response, "arrayErrores", "codigoDescripcion", "codigo", "descripcion"
        ),
        observations=_remote_errors(
            response,
            "arrayObservaciones",
            "codigoDescripcion",
            "codigo",
            "descripcion",
        ),
    )
    invoice = _find(response, "comprobanteResponse")
    if invoice is None:
        invoice = _find(response, "comprobante")
    source = invoice if invoice is not None else response
    parsed.cae = _text(source, "CAE") or _text(source, "codigoAutorizacion")
    parsed.cae_expiration = parse_afip_date(
        _text(source, "fechaVencimientoCAE") or _text(source, "fechaVencimiento")
    )
    parsed.number_from = _int(_text(source, "numeroComprobante"))
    parsed.number_to = parsed.number_from
    # Some responses nest the error arrays inside the invoice element
    if invoice is not None and not parsed.errors:
        parsed.errors = _remote_errors(
            invoice, "arrayErrores", "codigoDescripcion", "codigo", "descripcion"
        )
    return parsed


def parse_get_persona(content: bytes | str, person_cuit: str) -> TaxpayerRecord | None:
    """Parse a Padron A4 getPersona response.

    Returns:
        TaxpayerRecord | None: The taxpayer, or None when the registry has no
            person with that CUIT.
    """
    root = parse_document(content)
    if fault := find_fault(root):
        raise fault
    persona_return = _operation_result(root, "personaReturn")
    persona = persona_return.find("{*}persona")
    if persona is None:
        return None
    return TaxpayerRecord(
        cuit=_child_text(persona, "idPersona") or person_cuit,
        person_type=_child_text(persona, "tipoPersona"),
        last_name=_child_text(persona, "apellido"),
        first_name=_child_text(persona, "nombre"),
        business_name=_child_text(persona, "razonSocial"),
        key_status=_child_text(persona, "estadoClave"),
    )
