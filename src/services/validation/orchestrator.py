"""Document validation against the AFIP/ARCA registries.

A validation run checks a document's CUIT, CAE, uniqueness and tax amounts
concurrently, aggregates the four outcomes into one verdict, persists the
verdict with one row per check, and notifies subscribers. Runs degraded by
connectivity are handed to the retry queue.
"""

import asyncio
import time
from collections.abc import Awaitable
from datetime import UTC, date, datetime
from typing import Any, Protocol

from loguru import logger
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from src.core.constants import (
    MILLISECONDS_PER_SECOND,
    SEVERITY_ERROR,
    SEVERITY_INFO,
    SEVERITY_WARNING,
)
from src.core.context import RequestContext, generate_validation_id
from src.core.exceptions import (
    BusinessRejectionError,
    ConnectivityError,
    ErrorKind,
    PersistenceError,
    error_kind_of,
)
from src.core.observability import trace_operation
from src.infrastructure.afip.client import ArcaClient
from src.infrastructure.afip.schemas import InvoiceRecord
from src.infrastructure.cache import ValidationCache
from src.infrastructure.database.models import (
    ProcessedDocument,
    ValidationResultRecord,
)
from src.infrastructure.database.repositories import (
    DocumentRepository,
    ValidationResultRepository,
)
from src.services.validation import rules
from src.services.validation.connectivity import (
    CAE_SERVICE,
    CUIT_SERVICE,
    ConnectivityMonitor,
)
from src.services.validation.events import EventChannel
from src.services.validation.models import (
    AggregateResult,
    AuthorizedRange,
    CaeValidationResult,
    CuitValidationResult,
    DocumentData,
    DuplicateCheckResult,
    ExistingInvoice,
    TaxConsistencyResult,
    ValidationErrorEntry,
    ValidationOptions,
    ValidationResult,
)

OVERALL_SEVERITY = {
    "invalid": SEVERITY_ERROR,
    "valid_with_warnings": SEVERITY_WARNING,
    "valid": SEVERITY_INFO,
    "pending": SEVERITY_INFO,
}


class DocumentEnqueuer(Protocol):
    """Accepts documents whose validation must be retried."""

    async def add_item(
        self, document_id: str, payload: dict[str, Any], priority: int = 1
    ) -> None:
        """Queue a document for a later validation."""
        ...


def _elapsed_ms(start: float) -> int:
    return round((time.perf_counter() - start) * MILLISECONDS_PER_SECOND)


def _today() -> date:
    return datetime.now(UTC).date()


class ValidationOrchestrator:
    """Runs validations and owns their side effects.

    Args:
        client: AFIP/ARCA client for registry lookups.
        cache: Cache of positive lookup verdicts.
        monitor: Connectivity log written around remote calls.
        session_factory: Factory of database sessions.
        events: Channel notified of each run's lifecycle.
        retry_queue: Receives documents degraded by connectivity. Attached
            after construction since the queue replays through this class.
    """

    def __init__(
        self,
        client: ArcaClient,
        cache: ValidationCache,
        monitor: ConnectivityMonitor,
        session_factory: async_sessionmaker[AsyncSession],
        events: EventChannel | None = None,
        retry_queue: DocumentEnqueuer | None = None,
    ) -> None:
        self._client = client
        self._cache = cache
        self._monitor = monitor
        self._session_factory = session_factory
        self.events = events or EventChannel()
        self.retry_queue = retry_queue

    async def validate_document(
        self,
        document: DocumentData,
        options: ValidationOptions | None = None,
        priority: int = 1,
    ) -> AggregateResult:
        """Validate a document and persist the verdict.

        Args:
            document: Structured document to validate.
            options: Per-run switches.
            priority: Retry queue priority if the run is degraded.

        Returns:
            AggregateResult: The verdict and every sub-result.

        Raises:
            PersistenceError: If the verdict cannot be stored.
        """
        options = options or ValidationOptions()
        start = time.perf_counter()
        validation_id = generate_validation_id(document.id)
        RequestContext.set_validation_id(validation_id)
        result = AggregateResult(document_id=document.id, validation_id=validation_id)

        with (
            logger.contextualize(validation_id=validation_id, document_id=document.id),
            trace_operation("validation.run", document_id=document.id),
        ):
            logger.info("Starting validation of document {}", document.id)
            await self.events.emit(
                "validationStarted",
                {"documentId": document.id, "validationId": validation_id},
            )

            try:
                await self._run_checks(document, result, options.skip_cache)
                result.overall = rules.aggregate_overall(result)
                result.completed_at = datetime.now(UTC)
                result.processing_time_ms = _elapsed_ms(start)

                await self._persist(result)
            except Exception as e:
                logger.opt(exception=e).error(
                    "Validation of document {} failed", document.id
                )
                if (
                    error_kind_of(e) is ErrorKind.CONNECTIVITY
                    and options.enqueue_on_connectivity
                ):
                    await self._enqueue(document, priority)
                await self.events.emit(
                    "validationError",
                    {
                        "documentId": document.id,
                        "validationId": validation_id,
                        "error": str(e),
                    },
                )
                raise

            if options.enqueue_on_connectivity and is_connectivity_degraded(result):
                await self._enqueue(document, priority)

            await self.events.emit(
                "validationCompleted",
                {
                    "documentId": document.id,
                    "validationId": validation_id,
                    "results": result.to_dict(),
                },
            )
            logger.info(
                "Validation of document {} completed as {} in {}ms",
                document.id,
                result.overall,
                result.processing_time_ms,
                duration_ms=result.processing_time_ms,
            )
        return result

    async def _run_checks(
        self, document: DocumentData, result: AggregateResult, skip_cache: bool
    ) -> None:
        checks: dict[str, Awaitable[ValidationResult | None]] = {
            "cuit": self.validate_cuit(document.cuit, skip_cache=skip_cache),
            "cae": self._validate_document_cae(document, skip_cache),
            "duplicate": self.check_duplicates(document),
            "tax_consistency": self.check_tax_consistency(document),
        }
        outcomes = await asyncio.gather(*checks.values(), return_exceptions=True)

        for name, outcome in zip(checks, outcomes, strict=True):
            if isinstance(outcome, asyncio.CancelledError):
                raise outcome
            if isinstance(outcome, Exception):
                logger.opt(exception=outcome).warning("Check {} raised", name)
                result.errors.append(
                    ValidationErrorEntry(
                        type=name,
                        message=str(outcome),
                        severity=SEVERITY_ERROR,
                        error_kind=error_kind_of(outcome).value,
                    )
                )
                continue
            match name:
                case "cuit":
                    result.cuit_validation = outcome
                case "cae":
                    result.cae_validation = outcome
                case "duplicate":
                    result.duplicate_check = outcome
                case "tax_consistency":
                    result.tax_consistency = outcome

    async def _validate_document_cae(
        self, document: DocumentData, skip_cache: bool
    ) -> CaeValidationResult | None:
        if not document.cae:
            return None
        return await self.validate_cae(document.cae, document, skip_cache=skip_cache)

    async def validate_cuit(
        self, cuit: str | None, skip_cache: bool = False
    ) -> CuitValidationResult:
        """Validate a CUIT against the taxpayer registry.

        Only positive verdicts are cached. A registry that cannot be reached
        yields an invalid result with severity warning, so the document is
        not rejected for a transient failure.
        """
        start = time.perf_counter()
        normalized = rules.normalize_digits(cuit)
        if not normalized:
            return CuitValidationResult(
                valid=False,
                error="CUIT no informado",
                severity=SEVERITY_WARNING,
                response_time=_elapsed_ms(start),
            )

        if not rules.is_valid_cuit_format(normalized):
            return CuitValidationResult(
                valid=False,
                cuit=normalized,
                error="Formato de CUIT inválido",
                error_kind=ErrorKind.FORMAT.value,
                severity=SEVERITY_ERROR,
                checksum_valid=False,
                response_time=_elapsed_ms(start),
            )

        checksum_valid = rules.validate_cuit_checksum(normalized)
        cache_key = f"cuit_validation_{normalized}"
        if not skip_cache and (cached := await self._cache.get(cache_key)):
            logger.debug("CUIT validation cache hit for {}", normalized)
            return CuitValidationResult.model_validate(
                {**cached, "fromCache": True, "responseTime": _elapsed_ms(start)}
            )

        try:
            async with self._monitor.track(CUIT_SERVICE):
                taxpayer = await self._client.lookup_taxpayer(normalized)
        except (ConnectivityError, BusinessRejectionError) as e:
            connectivity = isinstance(e, ConnectivityError)
            logger.warning("CUIT validation of {} failed: {}", normalized, e.message)
            return CuitValidationResult(
                valid=False,
                cuit=normalized,
                error=e.message,
                error_kind=e.kind.value,
                severity=SEVERITY_WARNING if connectivity else SEVERITY_ERROR,
                checksum_valid=checksum_valid,
                response_time=_elapsed_ms(start),
            )

        if taxpayer is None:
            return CuitValidationResult(
                valid=False,
                cuit=normalized,
                error="CUIT no registrado en el padrón",
                error_kind=ErrorKind.NOT_FOUND.value,
                severity=SEVERITY_ERROR,
                checksum_valid=checksum_valid,
                response_time=_elapsed_ms(start),
            )

        result = CuitValidationResult(
            valid=True,
            cuit=normalized,
            taxpayer_name=taxpayer.display_name,
            taxpayer_type=taxpayer.person_type,
            fiscal_status=taxpayer.key_status,
            checksum_valid=checksum_valid,
            severity=SEVERITY_INFO if taxpayer.is_active else SEVERITY_WARNING,
            message=None if taxpayer.is_active else "Clave fiscal no activa",
            response_time=_elapsed_ms(start),
        )
        await self._cache.set(cache_key, result.to_dict(), "cuit")
        return result

    async def validate_cae(
        self,
        cae: str | None,
        invoice: DocumentData | None = None,
        skip_cache: bool = False,
    ) -> CaeValidationResult:
        """Validate a CAE, against WSFEv1 when the invoice identifies it.

        With invoice type, invoice number and CUIT available, the invoice is
        looked up and its registered CAE compared. Otherwise the result is an
        estimate from the format and the invoice date, flagged as not
        authoritative and never cached.
        """
        start = time.perf_counter()
        normalized = (cae or "").strip()
        if not normalized:
            return CaeValidationResult(
                valid=True,
                skipped=True,
                message="CAE no informado",
                response_time=_elapsed_ms(start),
            )

        if not rules.is_valid_cae_format(normalized):
            return CaeValidationResult(
                valid=False,
                cae=normalized,
                error="CAE inválido - debe tener 14 dígitos",
                error_kind=ErrorKind.FORMAT.value,
                severity=SEVERITY_ERROR,
                response_time=_elapsed_ms(start),
            )

        invoice = invoice or DocumentData(id="adhoc")
        cuit = rules.normalize_digits(invoice.cuit)
        cache_key = f"cae_validation_{normalized}_{cuit}"
        if not skip_cache and (cached := await self._cache.get(cache_key)):
            logger.debug("CAE validation cache hit for {}", normalized)
            return CaeValidationResult.model_validate(
                {**cached, "fromCache": True, "responseTime": _elapsed_ms(start)}
            )

        invoice_type = rules.resolve_invoice_type(invoice.invoice_type)
        numbers = rules.parse_invoice_number(invoice.invoice_number)
        if invoice_type is None or numbers is None or not cuit:
            return self._estimate_cae(normalized, invoice, start)

        point_of_sale, invoice_number = numbers
        try:
            async with self._monitor.track(CAE_SERVICE):
                record = await self._client.lookup_invoice(
                    invoice_type, point_of_sale, invoice_number
                )
        except (ConnectivityError, BusinessRejectionError) as e:
            connectivity = isinstance(e, ConnectivityError)
            logger.warning("CAE validation of {} failed: {}", normalized, e.message)
            return CaeValidationResult(
                valid=False,
                cae=normalized,
                error=e.message,
                error_kind=e.kind.value,
                severity=SEVERITY_WARNING if connectivity else SEVERITY_ERROR,
                response_time=_elapsed_ms(start),
            )

        result = _compare_cae(normalized, record, invoice_number)
        result.response_time = _elapsed_ms(start)
        if result.valid:
            await self._cache.set(cache_key, result.to_dict(), "cae")
        return result

    def _estimate_cae(
        self, cae: str, invoice: DocumentData, start: float
    ) -> CaeValidationResult:
        expiration = rules.estimate_cae_expiration(invoice.invoice_date)
        return CaeValidationResult(
            valid=True,
            cae=cae,
            expiration_date=expiration,
            is_expired=expiration < _today() if expiration else None,
            estimated_validation=True,
            authoritative=False,
            severity=SEVERITY_INFO,
            message=(
                "Formato de CAE válido; sin tipo, número y CUIT del comprobante "
                "no se consultó el registro"
            ),
            response_time=_elapsed_ms(start),
        )

    async def check_duplicates(
        self, document: DocumentData
    ) -> DuplicateCheckResult | None:
        """Look for completed documents with the same invoice identity.

        Returns:
            DuplicateCheckResult | None: None when invoice number, CUIT or
                date is missing.

        Raises:
            PersistenceError: If the documents table cannot be read. Within
                validate_document the failure is isolated like any other
                check: it becomes an error entry and the verdict is invalid.
        """
        if not (document.invoice_number and document.cuit and document.invoice_date):
            return None

        start = time.perf_counter()
        try:
            async with self._session_factory() as session:
                matches = await DocumentRepository(session).find_invoice_matches(
                    document.invoice_number, document.cuit, document.invoice_date
                )
        except SQLAlchemyError as e:
            raise PersistenceError("Duplicate lookup failed", cause=e) from e

        is_duplicate = len(matches) > 1
        duplicates: list[ProcessedDocument] = []
        if is_duplicate:
            if any(match.document_id == document.id for match in matches):
                duplicates = [m for m in matches if m.document_id != document.id]
            else:
                duplicates = matches[1:]

        return DuplicateCheckResult(
            valid=True,
            is_duplicate=is_duplicate,
            duplicate_count=len(duplicates),
            existing_invoices=[
                ExistingInvoice(
                    id=match.document_id,
                    file_path=match.file_path,
                    processed_at=match.created_at,
                )
                for match in duplicates
            ],
            severity=SEVERITY_WARNING if is_duplicate else SEVERITY_INFO,
            response_time=_elapsed_ms(start),
        )

    async def check_tax_consistency(
        self, document: DocumentData
    ) -> TaxConsistencyResult:
        """Check the document's amounts against each other."""
        start = time.perf_counter()
        issues = rules.collect_tax_issues(
            document.subtotal, document.iva, document.total_amount, document
        )
        if any(issue.severity == SEVERITY_ERROR for issue in issues):
            severity = SEVERITY_ERROR
        elif issues:
            severity = SEVERITY_WARNING
        else:
            severity = SEVERITY_INFO
        return TaxConsistencyResult(
            valid=not issues,
            issues=issues,
            total_issues=len(issues),
            severity=severity,
            response_time=_elapsed_ms(start),
        )

    async def _persist(self, result: AggregateResult) -> None:
        rows = [
            ValidationResultRecord(
                document_id=result.document_id,
                validation_id=result.validation_id,
                validation_type="complete",
                result_json=result.to_dict(),
                is_valid=result.overall != "invalid",
                severity=OVERALL_SEVERITY[result.overall],
                response_time_ms=result.processing_time_ms,
                validated_at=result.completed_at,
            )
        ]
        for validation_type, sub in result.sub_results().items():
            if sub is None:
                continue
            rows.append(
                ValidationResultRecord(
                    document_id=result.document_id,
                    validation_id=result.validation_id,
                    validation_type=validation_type,
                    result_json=sub.to_dict(),
                    is_valid=sub.valid,
                    severity=sub.severity,
                    response_time_ms=sub.response_time,
                    validated_at=result.completed_at,
                )
            )

        try:
            async with self._session_factory() as session, session.begin():
                await ValidationResultRepository(session).add_all(rows)
        except SQLAlchemyError as e:
            raise PersistenceError(
                f"Could not store validation {result.validation_id}",
                context={"document_id": result.document_id},
                cause=e,
            ) from e

    async def _enqueue(self, document: DocumentData, priority: int) -> None:
        if self.retry_queue is None:
            logger.warning("No retry queue attached, {} not queued", document.id)
            return
        await self.retry_queue.add_item(document.id, document.to_dict(), priority)

    async def get_validation_results(self, document_id: str) -> dict[str, Any] | None:
        """Return the latest stored verdict of a document, or None."""
        async with self._session_factory() as session:
            record = await ValidationResultRepository(session).latest_complete(
                document_id
            )
        return record.result_json if record else None

    async def load_document(self, document_id: str) -> DocumentData | None:
        """Build the validation input of a document processed upstream."""
        async with self._session_factory() as session:
            row = await DocumentRepository(session).get_by_document_id(document_id)
        if row is None:
            return None
        return DocumentData(
            id=row.document_id,
            document_type=row.document_type,
            cuit=row.cuit,
            cae=row.cae,
            invoice_number=row.invoice_number,
            invoice_type=row.invoice_type,
            invoice_date=row.invoice_date,
            total_amount=row.total_amount,
            subtotal=row.subtotal,
            iva=row.iva,
            file_path=row.file_path,
            status=row.status,
        )


def is_connectivity_degraded(result: AggregateResult) -> bool:
    """Whether any check of a run failed for lack of connectivity."""
    connectivity = ErrorKind.CONNECTIVITY.value
    return any(
        sub is not None and sub.error_kind == connectivity
        for sub in result.sub_results().values()
    ) or any(entry.error_kind == connectivity for entry in result.errors)


def _compare_cae(
    cae: str, record: InvoiceRecord, invoice_number: int
) -> CaeValidationResult:
    if not record.found:
        message = (
            record.errors[0].message if record.errors else "Comprobante no encontrado"
        )
        return CaeValidationResult(
            valid=False,
            cae=cae,
            error=message,
            error_kind=ErrorKind.NOT_FOUND.value,
            severity=SEVERITY_ERROR,
        )

    if record.cae != cae:
        return CaeValidationResult(
            valid=False,
            cae=cae,
            error="El CAE no coincide con el registrado para el comprobante",
            error_kind=ErrorKind.BUSINESS.value,
            severity=SEVERITY_ERROR,
        )

    authorized_range = None
    within_range = None
    if record.number_from is not None and record.number_to is not None:
        authorized_range = AuthorizedRange(
            from_=record.number_from, to=record.number_to
        )
        within_range = rules.is_within_range(
            invoice_number, record.number_from, record.number_to
        )

    is_expired = bool(record.cae_expiration and record.cae_expiration < _today())
    return CaeValidationResult(
        valid=True,
        cae=cae,
        expiration_date=record.cae_expiration,
        authorized_range=authorized_range,
        within_range=within_range,
        is_expired=is_expired,
        severity=SEVERITY_WARNING if within_range is False else SEVERITY_INFO,
    )
