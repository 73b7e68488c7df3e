"""Unit tests for src/infrastructure/afip/envelopes.py."""

from datetime import UTC, date, datetime

import pytest
from lxml import etree

from src.core.exceptions import BusinessRejectionError
from src.infrastructure.afip import envelopes
from src.infrastructure.afip.schemas import InvoiceAuthorizationRequest, VatRate
from tests.fixtures.soap import (
    fault_response,
    fecomp_missing_response,
    fecomp_response,
    fedummy_response,
    invoice_types_response,
    login_cms_response,
    make_credential,
    persona_missing_response,
    persona_response,
    soap_envelope,
)


@pytest.mark.unit
class TestParseDocument:
    """Test suite for response body parsing."""

    @pytest.mark.parametrize("body", [b"", b"   ", ""])
    def test_empty_body(self, body: bytes | str) -> None:
        """Test that an empty body is malformed."""
        with pytest.raises(envelopes.MalformedResponseError, match="Empty"):
            envelopes.parse_document(body)

    def test_html_error_page(self) -> None:
        """Test that a non-XML body is malformed."""
        with pytest.raises(envelopes.MalformedResponseError, match="well-formed"):
            envelopes.parse_document(b"<html><body>Bad Gateway</body>")

    def test_find_fault(self) -> None:
        """Test that a SOAP fault is detected with its code and message."""
        root = envelopes.parse_document(fault_response("Token expirado", "ns1:cms"))

        fault = envelopes.find_fault(root)

        assert fault is not None
        assert fault.code == "ns1:cms"
        assert fault.message == "Token expirado"

    def test_no_fault(self) -> None:
        """Test that a regular response carries no fault."""
        root = envelopes.parse_document(fedummy_response())

        assert envelopes.find_fault(root) is None


@pytest.mark.unit
class TestLoginTicket:
    """Test suite for WSAA login tickets."""

    def test_ticket_request_window(self) -> None:
        """Test that the ticket request spans ten minutes around now."""
        now = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)

        ticket = etree.fromstring(
            envelopes.build_login_ticket_request("wsfe", now, unique_id=42)
        )

        assert ticket.findtext("header/uniqueId") == "42"
        assert ticket.findtext("header/generationTime") == "2026-06-01T11:50:00+00:00"
        assert ticket.findtext("header/expirationTime") == "2026-06-01T12:10:00+00:00"
        assert ticket.findtext("service") == "wsfe"

    def test_parse_login_cms_response(self) -> None:
        """Test that the escaped ticket is unwrapped into a credential."""
        issued_at = datetime(2026, 6, 1, 12, 0, tzinfo=UTC)

        credential = envelopes.parse_login_cms_response(
            login_cms_response("tok", "sig", issued_at, valid_hours=12), "wsfe"
        )

        assert credential.service_name == "wsfe"
        assert credential.token == "tok"
        assert credential.sign == "sig"
        assert credential.expiration_time == datetime(2026, 6, 2, 0, 0, tzinfo=UTC)

    def test_login_fault_is_raised(self) -> None:
        """Test that a WSAA fault is raised as SoapFault."""
        with pytest.raises(envelopes.SoapFault, match="alreadyAuthenticated"):
            envelopes.parse_login_cms_response(
                fault_response("alreadyAuthenticated"), "wsfe"
            )

    def test_ticket_without_credentials(self) -> None:
        """Test that a ticket missing its token is malformed."""
        body = soap_envelope(
            "<loginCmsResponse><loginCmsReturn>&lt;loginTicketResponse/&gt;"
            "</loginCmsReturn></loginCmsResponse>"
        )

        with pytest.raises(envelopes.MalformedResponseError):
            envelopes.parse_login_cms_response(body, "wsfe")


@pytest.mark.unit
class TestWsfeParsing:
    """Test suite for WSFEv1 responses."""

    def test_invoice_found(self) -> None:
        """Test parsing a registered invoice."""
        record = envelopes.parse_fecomp_consultar(
            fecomp_response("12345678901234", number_from=7)
        )

        assert record.found
        assert record.number_from == 7
        assert record.number_to == 7
        assert record.cae == "12345678901234"
        assert record.cae_expiration == date(2099, 12, 31)
        assert record.invoice_date == date(2026, 10, 1)
        assert record.total == 121.0
        assert not record.has_errors

    def test_invoice_missing(self) -> None:
        """Test that an unknown invoice keeps the service error."""
        record = envelopes.parse_fecomp_consultar(fecomp_missing_response())

        assert not record.found
        assert record.errors[0].code == 602
        assert "No existen datos" in record.errors[0].message

    def test_param_list(self) -> None:
        """Test that FEParamGet records are flattened into dictionaries."""
        result = envelopes.parse_param_get(
            invoice_types_response(), "FEParamGetTiposCbte"
        )

        assert result.items == [
            {"Id": "1", "Desc": "Factura A"},
            {"Id": "6", "Desc": "Factura B"},
        ]

    def test_fedummy(self) -> None:
        """Test server status parsing."""
        assert envelopes.parse_fedummy(fedummy_response()).all_ok
        assert not envelopes.parse_fedummy(fedummy_response("ERROR")).all_ok

    def test_missing_result_element(self) -> None:
        """Test that a response for another operation is malformed."""
        with pytest.raises(envelopes.MalformedResponseError, match="FEDummyResult"):
            envelopes.parse_fedummy(fecomp_missing_response())

    def test_fecae_solicitar_approved(self) -> None:
        """Test parsing an approved CAE request."""
        body = soap_envelope(
            '<FECAESolicitarResponse xmlns="http://ar.gov.afip.dif.FEV1/">'
            "<FECAESolicitarResult><FeCabResp><Resultado>A</Resultado>"
            "<FchProceso>20260601</FchProceso></FeCabResp><FeDetResp>"
            "<FECAEDetResponse><Resultado>A</Resultado><CbteDesde>5</CbteDesde>"
            "<CbteHasta>5</CbteHasta><CAE>71234567890123</CAE>"
            "<CAEFchVto>20260611</CAEFchVto></FECAEDetResponse></FeDetResp>"
            "</FECAESolicitarResult></FECAESolicitarResponse>"
        )

        result = envelopes.parse_fecae_solicitar(body)

        assert result.approved
        assert result.cae_expiration == date(2026, 6, 11)
        assert result.number_from == 5


@pytest.mark.unit
class TestEnvelopeBuilding:
    """Test suite for request envelopes."""

    def test_fecomp_consultar_fields(self) -> None:
        """Test that the invoice query carries auth and invoice keys."""
        root = etree.fromstring(
            envelopes.build_fecomp_consultar(
                make_credential(), "20111111112", 1, 3, 42
            )
        )

        assert root.findtext(".//{*}Token") == "test-token"
        assert root.findtext(".//{*}Cuit") == "20111111112"
        assert root.findtext(".//{*}CbteTipo") == "1"
        assert root.findtext(".//{*}PtoVta") == "3"
        assert root.findtext(".//{*}CbteNro") == "42"

    def test_fecae_solicitar_amounts(self) -> None:
        """Test that amounts use two decimals and VAT lines are included."""
        request = InvoiceAuthorizationRequest(
            point_of_sale=1,
            invoice_type=1,
            number_from=5,
            number_to=5,
            invoice_date=date(2026, 6, 1),
            doc_type=80,
            doc_number="20123456786",
            total=121,
            net_amount=100,
            vat_amount=21,
            vat_rates=[VatRate(rate_id=5, base_amount=100, amount=21)],
        )

        root = etree.fromstring(
            envelopes.build_fecae_solicitar(make_credential(), "20111111112", request)
        )

        assert root.findtext(".//{*}ImpTotal") == "121.00"
        assert root.findtext(".//{*}CbteFch") == "20260601"
        assert root.findtext(".//{*}AlicIva/{*}Importe") == "21.00"
        assert root.find(".//{*}FchServDesde") is None


@pytest.mark.unit
class TestPersonaParsing:
    """Test suite for Padron A4 responses."""

    def test_person(self) -> None:
        """Test parsing a registered individual."""
        record = envelopes.parse_get_persona(
            persona_response("20123456786"), "20123456786"
        )

        assert record is not None
        assert record.display_name == "PEREZ JUAN"
        assert record.is_active

    def test_company_with_inactive_key(self) -> None:
        """Test that the business name wins and the key status is read."""
        record = envelopes.parse_get_persona(
            persona_response(
                "30712345671",
                business_name="ACME SA",
                person_type="JURIDICA",
                key_status="INACTIVO",
            ),
            "30712345671",
        )

        assert record is not None
        assert record.display_name == "ACME SA"
        assert not record.is_active

    def test_missing_person(self) -> None:
        """Test that a response without a persona returns None."""
        assert (
            envelopes.parse_get_persona(persona_missing_response(), "20123456786")
            is None
        )


@pytest.mark.unit
@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("20260601", date(2026, 6, 1)),
        ("2026-06-01", date(2026, 6, 1)),
        ("", None),
        (None, None),
    ],
)
def test_parse_afip_date(value: str | None, expected: date | None) -> None:
    """Test both AFIP date formats."""
    assert envelopes.parse_afip_date(value) == expected


WSMTXCA = "http://impl.service.wsmtxca.afip.gob.ar/service/"


@pytest.mark.unit
class TestWsmtxca:
    """Test suite for complex invoice authorization."""

    def test_autorizar_envelope(self) -> None:
        """Test that the request carries auth, invoice and VAT subtotals."""
        request = InvoiceAuthorizationRequest(
            point_of_sale=2,
            invoice_type=1,
            number_from=9,
            number_to=9,
            invoice_date=date(2026, 6, 1),
            doc_type=80,
            doc_number="20123456786",
            total=121,
            net_amount=100,
            vat_amount=21,
            vat_rates=[VatRate(rate_id=5, base_amount=100, amount=21)],
        )

        root = etree.fromstring(
            envelopes.build_wsmtxca_autorizar(
                make_credential("wsmtxca"), "20111111112", request
            )
        )

        operation = root.find(f".//{{{WSMTXCA}}}autorizarComprobanteRequest")
        assert operation is not None
        assert operation.findtext("authRequest/cuitRepresentada") == "20111111112"
        invoice = operation.find("comprobanteCAERequest")
        assert invoice is not None
        assert invoice.findtext("fechaEmision") == "2026-06-01"
        assert invoice.findtext("numeroPuntoVenta") == "2"
        assert invoice.findtext("importeTotal") == "121.00"
        assert invoice.findtext("codigoMoneda") == "PES"
        assert invoice.findtext("arraySubtotalesIVA/subtotalIVA/importe") == "21.00"

    def test_autorizar_approved(self) -> None:
        """Test parsing an authorized complex invoice."""
        body = soap_envelope(
            f'<ns2:autorizarComprobanteResponse xmlns:ns2="{WSMTXCA}">'
            "<resultado>A</resultado><comprobanteResponse>"
            "<numeroComprobante>9</numeroComprobante><CAE>71234567890123</CAE>"
            "<fechaVencimientoCAE>2026-06-11</fechaVencimientoCAE>"
            "</comprobanteResponse></ns2:autorizarComprobanteResponse>"
        )

        result = envelopes.parse_wsmtxca_autorizar(body)

        assert result.approved
        assert result.cae == "71234567890123"
        assert result.cae_expiration == date(2026, 6, 11)
        assert result.number_from == result.number_to == 9

    def test_autorizar_rejected(self) -> None:
        """Test that arrayErrores becomes business errors."""
        body = soap_envelope(
            f'<ns2:autorizarComprobanteResponse xmlns:ns2="{WSMTXCA}">'
            "<resultado>R</resultado><arrayErrores><codigoDescripcion>"
            "<codigo>1502</codigo><descripcion>Comprobante duplicado</descripcion>"
            "</codigoDescripcion></arrayErrores>"
            "</ns2:autorizarComprobanteResponse>"
        )

        result = envelopes.parse_wsmtxca_autorizar(body)

        assert not result.approved
        assert [error.code for error in result.errors] == [1502]
        with pytest.raises(BusinessRejectionError, match="Comprobante duplicado"):
            result.raise_for_errors("autorizarComprobante")


@pytest.mark.unit
@pytest.mark.parametrize("value", ["20991399", "2026-02-30", "soon"])
def test_parse_afip_date_rejects_invalid_dates(value: str) -> None:
    """Test that an impossible date is reported as a malformed response."""
    with pytest.raises(envelopes.MalformedResponseError, match="Invalid date"):
        envelopes.parse_afip_date(value)
