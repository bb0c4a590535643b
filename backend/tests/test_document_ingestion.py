from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from lakiapu.exceptions import InvalidInputError, UpstreamUnavailableError
from lakiapu.models import DocumentSection, LegalDocument
from lakiapu.schemas.legal import DocumentIn
from lakiapu.services.document_ingestion import (
    DocumentIngestionService,
    decode_embedding,
    encode_embedding,
    section_text,
)


class _FakeEmbeddings:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.calls: list[list[str]] = []

    async def aembed_documents(self, texts):
        self.calls.append(list(texts))
        if self.error is not None:
            raise self.error
        return [[float(i), 0.5, -1.25] for i, _ in enumerate(texts)]


class _FakeRetriever:
    def __init__(self) -> None:
        self.indexed: list[tuple[str, int]] = []
        self.vectors: list[list | None] = []

    async def index_sections(self, document, sections, vectors=None):
        self.indexed.append((document.identifier, len(sections)))
        self.vectors = list(vectors or [])
        return len(sections)


def _document(**overrides) -> DocumentIn:
    data = {
        "identifier": "1978/038",
        "type": "statute",
        "title": "Kuluttajansuojalaki",
        "content": "Koko teksti",
        "url": "https://finlex.fi/fi/laki/ajantasa/1978038",
        "publishedAt": datetime(1978, 1, 20, tzinfo=timezone.utc).isoformat(),
        "metadata": {"category": "kuluttaja", "ministry": "OM"},
        "sections": [
            {"sectionNumber": "6:14", "title": "Peruuttamisoikeus", "content": "Kuluttajalla on oikeus..."},
            {"sectionNumber": "6:15", "content": "Peruuttamisaika..."},
        ],
    }
    data.update(overrides)
    return DocumentIn.model_validate(data)


def test_embedding_codec() -> None:
    blob = encode_embedding([0.0, 0.5, -1.25])
    assert len(blob) == 12
    assert decode_embedding(blob) == [0.0, 0.5, -1.25]
    with pytest.raises(ValueError):
        _ = decode_embedding(b"abc")


def test_section_text() -> None:
    assert section_text("Laki", None, "Sisältö") == "Laki\n\nSisältö"


@pytest.mark.asyncio
async def test_ingest_stores_document_sections_and_indexes(test_session) -> None:
    embeddings = _FakeEmbeddings()
    retriever = _FakeRetriever()
    service = DocumentIngestionService(embeddings, retriever)  # type: ignore[arg-type]

    document = await service.ingest(test_session, _document())

    assert document.id is not None
    assert document.type == "statute"
    assert document.doc_metadata == {"category": "kuluttaja", "ministry": "OM"}
    assert retriever.indexed == [("1978/038", 2)]
    assert embeddings.calls[0][0] == "Kuluttajansuojalaki\nPeruuttamisoikeus\nKuluttajalla on oikeus..."
    assert len(embeddings.calls) == 1
    assert retriever.vectors == [[0.0, 0.5, -1.25], [1.0, 0.5, -1.25]]

    sections = (
        await test_session.execute(
            select(DocumentSection).where(DocumentSection.document_id == document.id).order_by(DocumentSection.id)
        )
    ).scalars().all()
    assert [s.section_number for s in sections] == ["6:14", "6:15"]
    assert decode_embedding(sections[1].embedding) == [1.0, 0.5, -1.25]


@pytest.mark.asyncio
async def test_ingest_without_embeddings(test_session) -> None:
    service = DocumentIngestionService(None)
    document = await service.ingest(test_session, _document(identifier="KKV-1", type="guideline"))

    sections = (
        await test_session.execute(select(DocumentSection).where(DocumentSection.document_id == document.id))
    ).scalars().all()
    assert all(s.embedding is None for s in sections)


@pytest.mark.asyncio
async def test_ingest_duplicate_identifier_rejected(test_session) -> None:
    service = DocumentIngestionService(None)
    _ = await service.ingest(test_session, _document())

    with pytest.raises(InvalidInputError):
        _ = await service.ingest(test_session, _document(title="Toinen"))

    count = len((await test_session.execute(select(LegalDocument))).scalars().all())
    assert count == 1


@pytest.mark.asyncio
async def test_ingest_embedding_failure_stores_nothing(test_session) -> None:
    service = DocumentIngestionService(_FakeEmbeddings(error=RuntimeError("quota")))

    with pytest.raises(UpstreamUnavailableError):
        _ = await service.ingest(test_session, _document())

    assert (await test_session.execute(select(LegalDocument))).scalars().all() == []
