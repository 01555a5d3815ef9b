"""
Unit Tests for VisionExtractor
==============================

Document-type policy and whole-document failure handling.
"""

import json

import pytest

from setup_assistant.schemas.domain import EntityKind, FileKind
from setup_assistant.schemas.drafts import DraftContract, DraftExpense, DraftReceivable
from setup_assistant.services.ai.retry import RetryPolicy
from setup_assistant.services.data_transformer import DataTransformer
from setup_assistant.services.professions import get_profession
from setup_assistant.services.vision_extractor import DocumentType, VisionExtractor, allowed_kinds
from setup_assistant.utils.errors import VisionExtractionError

PROPOSAL = {
    "documentType": "proposal",
    "paymentTermsExplicit": False,
    "contracts": [{
        "clientName": "ACME Ltda",
        "projectName": "Sede Nova",
        "totalValue": "R$ 120.000,00",
        "signedDate": "10/03/2024",
    }],
    "receivables": [{"amount": "R$ 40.000,00", "expectedDate": "10/04/2024"}],
    "expenses": [{"description": "Material", "amount": 500}],
}


@pytest.fixture
def make_extractor(settings, today):
    def _make(ai_client) -> VisionExtractor:
        return VisionExtractor(
            ai_client,
            RetryPolicy.from_settings(settings),
            settings,
            DataTransformer(today=today),
        )

    return _make


class TestDocumentPolicy:
    """Tests for the kind filter applied per document type."""

    def test_proposal_without_explicit_terms_keeps_contract_only(self, make_extractor, mock_ai_client) -> None:
        extraction = make_extractor(mock_ai_client()).interpret(PROPOSAL, "proposta.pdf")

        assert extraction.document_type == DocumentType.PROPOSAL
        assert [type(d) for d in extraction.drafts] == [DraftContract]
        assert extraction.discarded == {EntityKind.RECEIVABLES: 1, EntityKind.EXPENSES: 1}

    def test_proposal_with_explicit_terms_keeps_receivables(self, make_extractor, mock_ai_client) -> None:
        data = {**PROPOSAL, "paymentTermsExplicit": True}

        extraction = make_extractor(mock_ai_client()).interpret(data, "proposta.pdf")

        assert sorted(type(d).__name__ for d in extraction.drafts) == ["DraftContract", "DraftReceivable"]
        assert extraction.discarded == {EntityKind.EXPENSES: 1}

    def test_invoice_keeps_expenses_only(self, make_extractor, mock_ai_client) -> None:
        data = {**PROPOSAL, "documentType": "Nota Fiscal de Serviço"}

        extraction = make_extractor(mock_ai_client()).interpret(data, "nf.pdf")

        assert extraction.document_type == DocumentType.INVOICE
        assert [type(d) for d in extraction.drafts] == [DraftExpense]

    def test_unknown_type_keeps_everything(self, make_extractor, mock_ai_client) -> None:
        data = {**PROPOSAL, "documentType": "relatório mensal"}

        extraction = make_extractor(mock_ai_client()).interpret(data, "rel.pdf")

        assert extraction.document_type == DocumentType.OTHER
        assert len(extraction.drafts) == 3
        assert extraction.discarded == {}

    def test_incomplete_item_becomes_row_error(self, make_extractor, mock_ai_client) -> None:
        data = {
            "documentType": "contract",
            "contracts": [{"clientName": "ACME", "projectName": "Sede"}],
        }

        extraction = make_extractor(mock_ai_client()).interpret(data, "contrato.pdf")

        assert extraction.drafts == []
        assert extraction.row_errors[0].entity == EntityKind.CONTRACTS
        assert extraction.row_errors[0].message == (
            "Contract #1 (ACME - Sede): Missing required field(s): totalValue, signedDate"
        )

    def test_post_processing_applies(self, make_extractor, mock_ai_client) -> None:
        data = {
            "documentType": "recibo",
            "expenses": [{"description": "Energia", "amount": "R$ 350,00", "dueDate": "10/05/2024", "status": "pago"}],
        }

        extraction = make_extractor(mock_ai_client()).interpret(data, "recibo.jpg")

        expense = extraction.drafts[0]
        assert expense.status == "paid"
        assert expense.paid_amount == 350.0
        assert expense.source.file_name == "recibo.jpg"


@pytest.mark.parametrize(
    "value,expected",
    [
        ("Proposta comercial", DocumentType.PROPOSAL),
        ("orçamento", DocumentType.PROPOSAL),
        ("CONTRATO DE PRESTAÇÃO", DocumentType.CONTRACT),
        ("fatura", DocumentType.INVOICE),
        ("Recibo de pagamento", DocumentType.RECEIPT),
        (None, DocumentType.OTHER),
    ],
)
def test_document_type_parse(value, expected) -> None:
    assert DocumentType.parse(value) == expected


def test_allowed_kinds() -> None:
    assert allowed_kinds(DocumentType.CONTRACT, False) == {EntityKind.CONTRACTS}
    assert allowed_kinds(DocumentType.RECEIPT, True) == {EntityKind.EXPENSES}
    assert allowed_kinds(DocumentType.OTHER, False) == set(EntityKind)


class TestExtract:
    """Tests for the AI call."""

    @pytest.mark.asyncio
    async def test_pdf_is_attached(self, make_extractor, mock_ai_client, settings) -> None:
        client = mock_ai_client(json.dumps(PROPOSAL))

        extraction = await make_extractor(client).extract(b"%PDF-1.4 ...", FileKind.PDF, "proposta.pdf")

        assert len(extraction.drafts) == 1
        call = client.calls[0]
        assert call["attachment"].media_type == "application/pdf"
        assert call["model"] == settings.ai_model
        assert "proposta.pdf" in call["prompt"]

    @pytest.mark.asyncio
    async def test_prompt_follows_profession(self, make_extractor, mock_ai_client) -> None:
        client = mock_ai_client(json.dumps(PROPOSAL), json.dumps(PROPOSAL))
        extractor = make_extractor(client)

        await extractor.extract(b"%PDF-1.4", FileKind.PDF, "ficha.pdf", profession=get_profession("medicina"))
        await extractor.extract(b"%PDF-1.4", FileKind.PDF, "ficha.pdf", profession=get_profession("arquitetura"))

        medical, architecture = (call["prompt"] for call in client.calls)
        assert "a medical practice or clinic" in medical
        assert "Data da Primeira Consulta" in medical
        assert "an architecture and design office" in architecture
        assert "Data de Assinatura" in architecture
        assert "clinic" not in architecture

    @pytest.mark.asyncio
    async def test_image_media_type(self, make_extractor, mock_ai_client) -> None:
        client = mock_ai_client('{"documentType": "receipt", "expenses": []}')

        await make_extractor(client).extract(b"\xff\xd8\xff\xe0jpeg", FileKind.IMAGE, "foto.png")

        assert client.calls[0]["attachment"].media_type == "image/jpeg"

    @pytest.mark.asyncio
    async def test_no_json_fails_the_document(self, make_extractor, mock_ai_client) -> None:
        client = mock_ai_client("I could not read this document.")

        with pytest.raises(VisionExtractionError, match="Failed to extract data from pdf"):
            await make_extractor(client).extract(b"%PDF-1.4", FileKind.PDF, "scan.pdf")

    @pytest.mark.asyncio
    async def test_empty_file(self, make_extractor, mock_ai_client) -> None:
        client = mock_ai_client()

        with pytest.raises(VisionExtractionError, match="file is empty"):
            await make_extractor(client).extract(b"", FileKind.IMAGE, "foto.png")

        assert client.calls == []
