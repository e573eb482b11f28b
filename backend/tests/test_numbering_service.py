"""
Test per la numerazione dei documenti.
"""

import uuid
from datetime import date
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import NumberingConflictError
from app.models.amendment import Amendment
from app.models.invoice import CreditNote, Invoice
from app.models.quote import Quote
from app.services.numbering_service import (
    NumberingService,
    commit_numbered,
    flush_numbered,
    with_numbering_retry,
)
from tests.factories import make_invoice, make_quote, make_result, register


ON_DATE = date(2026, 10, 19)


def _service(last_number=None):
    service = NumberingService()
    service._last_number = AsyncMock(return_value=last_number)
    return service


class SequenceDb:
    """
    Sessione finta per le query di sequenza.

    Risponde alla select di NumberingService._last_number leggendo i numeri
    dei documenti già assegnati: filtro sul prefisso LIKE e, se presente,
    sul preventivo padre; ordine per lunghezza e poi alfabetico.
    """

    def __init__(self, mock_db):
        self.documents = []
        mock_db.execute.side_effect = self.execute

    def record(self, document):
        self.documents.append(document)

    async def execute(self, statement, params=None):
        if params is not None:
            # pg_advisory_xact_lock
            return make_result()
        model = statement.column_descriptions[0]["entity"]
        values = list(statement.compile().params.values())
        prefix = next(v for v in values if isinstance(v, str)).rstrip("%")
        quote_ids = [v for v in values if isinstance(v, uuid.UUID)]
        numbers = sorted(
            (
                doc.number
                for doc in self.documents
                if isinstance(doc, model)
                and doc.number
                and doc.number.startswith(prefix)
                and all(doc.quote_id == quote_id for quote_id in quote_ids)
            ),
            key=lambda number: (len(number), number),
        )
        return make_result(scalar=numbers[-1] if numbers else None)


class TestNumberFormats:
    """Test formati dei numeri."""

    async def test_first_quote_of_month(self, mock_db):
        """Test primo preventivo del mese"""
        quote = Quote(id=uuid.uuid4(), number=None)
        number = await _service().assign_number(mock_db, quote, ON_DATE)

        assert number == "DEV-2026-10-001"
        assert quote.number == number

    async def test_invoice_sequence_continues(self, mock_db):
        """Test sequenza annuale fatture"""
        invoice = Invoice(id=uuid.uuid4(), number=None)
        number = await _service("FACT-2026-041").assign_number(mock_db, invoice, ON_DATE)
        assert number == "FACT-2026-042"

    async def test_sequence_past_three_digits(self, mock_db):
        """Test sequenza oltre 999"""
        credit_note = CreditNote(id=uuid.uuid4(), number=None)
        number = await _service("AV-2026-999").assign_number(mock_db, credit_note, ON_DATE)
        assert number == "AV-2026-1000"

    async def test_already_numbered_is_untouched(self, mock_db):
        """Test idempotenza su documento già numerato"""
        invoice = Invoice(id=uuid.uuid4(), number="FACT-2026-007")
        service = _service("FACT-2026-041")

        assert await service.assign_number(mock_db, invoice, ON_DATE) == "FACT-2026-007"
        service._last_number.assert_not_awaited()

    async def test_scope_is_locked(self, mock_db):
        """Test advisory lock prima della lettura della sequenza"""
        invoice = Invoice(id=uuid.uuid4(), number=None)
        with patch.object(NumberingService, "_lock_scope", AsyncMock()) as lock:
            await _service().assign_number(mock_db, invoice, ON_DATE)
        lock.assert_awaited_once_with(mock_db, "invoices:2026")


class TestAmendmentNumber:
    """Test numerazione varianti."""

    async def test_derived_from_quote(self, mock_db):
        """Test numero variante dal numero del preventivo"""
        quote = make_quote(number="DEV-2026-10-004")
        mock_db._store[(Quote, quote.id)] = quote
        amendment = Amendment(id=uuid.uuid4(), quote_id=quote.id, number=None)

        number = await _service("2026-004-A1").assign_number(mock_db, amendment)

        assert number == "2026-004-A2"

    async def test_deferred_without_quote_number(self, mock_db):
        """Test numero differito finché il preventivo non è numerato"""
        quote = make_quote(number=None)
        mock_db._store[(Quote, quote.id)] = quote
        amendment = Amendment(id=uuid.uuid4(), quote_id=quote.id, number=None)

        assert await _service().assign_number(mock_db, amendment) is None
        assert amendment.number is None


class TestNumberingConflicts:
    """Test conversione dei conflitti e retry."""

    async def test_flush_conflict(self, mock_db):
        """Test IntegrityError al flush"""
        mock_db.flush.side_effect = IntegrityError("INSERT", {}, Exception("duplicate key"))
        invoice = Invoice(id=uuid.uuid4(), number="FACT-2026-001")

        with pytest.raises(NumberingConflictError) as exc_info:
            await flush_numbered(mock_db, invoice, "invoice")

        assert exc_info.value.number == "FACT-2026-001"
        mock_db.rollback.assert_awaited_once()

    async def test_commit_conflict(self, mock_db):
        """Test IntegrityError al commit"""
        mock_db.commit.side_effect = IntegrityError("INSERT", {}, Exception("duplicate key"))
        with pytest.raises(NumberingConflictError):
            await commit_numbered(mock_db, Invoice(number="FACT-2026-001"), "invoice")

    async def test_retry_until_success(self):
        """Test nuovo tentativo dopo un conflitto"""
        operation = AsyncMock(side_effect=[NumberingConflictError("invoice"), "ok"])
        assert await with_numbering_retry(operation, attempts=3) == "ok"
        assert operation.await_count == 2

    async def test_retry_exhausted(self):
        """Test conflitto persistente"""
        operation = AsyncMock(side_effect=NumberingConflictError("invoice"))
        with pytest.raises(NumberingConflictError):
            await with_numbering_retry(operation, attempts=2)
        assert operation.await_count == 2


class TestSequences:
    """Test sequenze su più documenti."""

    async def test_invoice_sequence_is_gapless(self, mock_db):
        """Test N fatture nello stesso anno: numeri distinti, crescenti, senza buchi"""
        sequence = SequenceDb(mock_db)
        service = NumberingService()
        invoices = []

        for _ in range(5):
            invoice = Invoice(id=uuid.uuid4(), number=None, status="draft")
            await service.assign_number(mock_db, invoice, ON_DATE)
            sequence.record(invoice)
            invoices.append(invoice)

        invoices[2].status = "cancelled"
        invoice = Invoice(id=uuid.uuid4(), number=None, status="draft")
        await service.assign_number(mock_db, invoice, ON_DATE)
        invoices.append(invoice)

        numbers = [invoice.number for invoice in invoices]
        assert numbers == [f"FACT-2026-{n:03d}" for n in range(1, 7)]
        assert len(set(numbers)) == len(numbers)

    async def test_new_year_restarts_sequence(self, mock_db):
        """Test nuova sequenza al cambio d'anno"""
        sequence = SequenceDb(mock_db)
        sequence.record(make_invoice(number="FACT-2026-118"))

        invoice = Invoice(id=uuid.uuid4(), number=None)
        await NumberingService().assign_number(mock_db, invoice, date(2027, 1, 2))

        assert invoice.number == "FACT-2027-001"

    async def test_amendments_scoped_to_their_quote(self, mock_db):
        """Test varianti di preventivi di mesi diversi con lo stesso progressivo"""
        sequence = SequenceDb(mock_db)
        service = NumberingService()
        october = make_quote(number=None, status="signed")
        november = make_quote(number=None, status="signed")
        register(mock_db, october, november)

        await service.assign_number(mock_db, october, date(2026, 10, 5))
        sequence.record(october)
        await service.assign_number(mock_db, november, date(2026, 11, 3))
        sequence.record(november)
        assert (october.number, november.number) == ("DEV-2026-10-001", "DEV-2026-11-001")

        numbers = []
        for quote in (october, november, november):
            amendment = Amendment(id=uuid.uuid4(), quote_id=quote.id, number=None)
            await service.assign_number(mock_db, amendment)
            sequence.record(amendment)
            numbers.append(amendment.number)

        assert numbers == ["2026-001-A1", "2026-001-A1", "2026-001-A2"]
