"""Legal source retrieval over the vector store"""
from __future__ import annotations

import asyncio
import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol, cast

from langchain_chroma import Chroma
from langchain_core.embeddings import Embeddings
from langchain_openai import OpenAIEmbeddings
from langchain_text_splitters import RecursiveCharacterTextSplitter
from pydantic import SecretStr

from ..config import Settings
from ..exceptions import UpstreamUnavailableError
from ..models.legal_document import DocumentSection, DocumentType, LegalDocument
from ..schemas.base import clamp_unit
from ..schemas.chat import Source, SourceType

logger = logging.getLogger(__name__)

FINLEX_BASE_URL = "https://finlex.fi/fi/laki/ajantasa/"

# corpus searched for each document type
CORPUS_BY_DOCUMENT_TYPE: dict[str, SourceType] = {
    DocumentType.STATUTE.value: SourceType.FINLEX,
    DocumentType.CASE_LAW.value: SourceType.FINLEX,
    DocumentType.GUIDELINE.value: SourceType.KKV,
}


def finlex_url(identifier: str) -> str:
    """Public Finlex link for a statute number such as `1978/038`"""
    return FINLEX_BASE_URL + str(identifier).strip().replace("/", "", 1)


@dataclass(frozen=True)
class RetrievedSource:
    title: str
    link: str
    type: SourceType
    relevance: float
    section: str | None = None
    identifier: str | None = None
    content: str = ""

    def to_source(self) -> Source:
        return Source(
            link=self.link,
            title=self.title,
            section=self.section,
            type=self.type,
            identifier=self.identifier,
            relevance=self.relevance,
        )


class LegalRetriever(Protocol):
    corpora: tuple[str, ...]

    async def search(self, query: str) -> list[RetrievedSource]: ...


def section_text(document_title: str, section_title: str | None, content: str) -> str:
    """Text embedded for one section"""
    return f"{document_title}\n{section_title or ''}\n{content}"


def score_to_similarity(score: float) -> float:
    """Turn a vector-store distance into a similarity in [0, 1]; smaller distance, higher similarity"""
    return clamp_unit(1.0 / (1.0 + max(0.0, float(score))))


class SectionEmbeddings(Embeddings):
    """Collection embedding function that reuses vectors computed at ingestion.

    Texts primed with `remember` are answered from memory; everything else,
    including every search query, goes to the wrapped model.
    """

    def __init__(self, inner: Embeddings):
        self.inner = inner
        self._known: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    def remember(self, vectors: dict[str, list[float]]) -> None:
        with self._lock:
            self._known.update(vectors)

    def forget(self, texts: Sequence[str]) -> None:
        with self._lock:
            for t in texts:
                _ = self._known.pop(t, None)

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        with self._lock:
            known = {t: self._known[t] for t in texts if t in self._known}
        missing = [t for t in texts if t not in known]
        fresh = dict(zip(missing, self.inner.embed_documents(missing))) if missing else {}
        return [known[t] if t in known else fresh[t] for t in texts]

    def embed_query(self, text: str) -> list[float]:
        return self.inner.embed_query(text)


class VectorLegalRetriever:
    """Searches the Finlex and KKV corpora stored in one Chroma collection.

    Every indexed chunk carries a `corpus` metadata tag; a search runs one
    filtered similarity query per corpus concurrently and returns the hits
    corpus by corpus, most relevant first within each.
    """

    corpora: tuple[str, ...] = (SourceType.FINLEX.value, SourceType.KKV.value)

    def __init__(
        self,
        settings: Settings,
        *,
        vector_store: Any | None = None,
        embeddings: OpenAIEmbeddings | None = None,
    ):
        self.settings = settings
        self.k: int = max(1, int(settings.retrieval_results_per_corpus))
        self.min_relevance: float = clamp_unit(settings.retrieval_min_relevance)
        self.embeddings: OpenAIEmbeddings | None = embeddings
        self.embedding_function: SectionEmbeddings | None = (
            SectionEmbeddings(embeddings) if embeddings is not None else None
        )
        self.vector_store: Any | None = vector_store
        self.text_splitter: RecursiveCharacterTextSplitter = RecursiveCharacterTextSplitter(
            chunk_size=1000,
            chunk_overlap=100,
            separators=["\n\n", "\n", ". ", " "]
        )
        self._initialized: bool = vector_store is not None

    def initialize(self) -> None:
        """Open the persistent collection when an API key is configured"""
        if self._initialized:
            return
        self._initialized = True
        if not self.settings.openai_api_key:
            logger.warning("retrieval disabled: OPENAI_API_KEY is not set")
            return
        if self.embeddings is None:
            self.embeddings = OpenAIEmbeddings(
                model=self.settings.embedding_model,
                api_key=SecretStr(self.settings.openai_api_key),
                base_url=self.settings.openai_base_url,
            )
        if self.embedding_function is None:
            self.embedding_function = SectionEmbeddings(self.embeddings)
        self.vector_store = Chroma(
            persist_directory=self.settings.chroma_persist_dir,
            embedding_function=self.embedding_function,
            collection_name=self.settings.chroma_collection,
        )

    @property
    def available(self) -> bool:
        self.initialize()
        return self.vector_store is not None

    def _search_corpus_sync(self, query: str, corpus: str) -> list[RetrievedSource]:
        store = self.vector_store
        if store is None:
            return []
        results = store.similarity_search_with_score(query, k=self.k, filter={"corpus": corpus})
        hits: list[RetrievedSource] = []
        for doc, score in results:
            doc_obj = cast(object, doc)
            metadata = getattr(doc_obj, "metadata", None)
            if not isinstance(metadata, dict):
                metadata = {}
            relevance = score_to_similarity(float(score))
            if relevance < self.min_relevance:
                continue
            hits.append(
                RetrievedSource(
                    title=str(metadata.get("title") or ""),
                    link=str(metadata.get("link") or ""),
                    type=SourceType.parse(corpus) or SourceType.OTHER,
                    relevance=relevance,
                    section=(str(metadata["section"]) if metadata.get("section") else None),
                    identifier=(str(metadata["identifier"]) if metadata.get("identifier") else None),
                    content=str(getattr(doc_obj, "page_content", "")),
                )
            )
        hits.sort(key=lambda h: -h.relevance)
        return hits[: self.k]

    async def _search_corpus(self, query: str, corpus: str) -> list[RetrievedSource]:
        try:
            return await asyncio.to_thread(self._search_corpus_sync, query, corpus)
        except Exception as e:
            logger.exception("vector search failed corpus=%s", corpus)
            raise UpstreamUnavailableError("Legal source search failed", details={"corpus": corpus}) from e

    async def search(self, query: str) -> list[RetrievedSource]:
        q = str(query or "").strip()
        if not q:
            return []
        self.initialize()
        if self.vector_store is None:
            return []

        per_corpus = await asyncio.gather(*(self._search_corpus(q, c) for c in self.corpora))
        out: list[RetrievedSource] = []
        for hits in per_corpus:
            out.extend(hits)
        return out

    def _chunks_for(self, document: LegalDocument, section: DocumentSection) -> tuple[list[str], list[dict[str, Any]]]:
        corpus = CORPUS_BY_DOCUMENT_TYPE.get(str(getattr(document.type, "value", document.type)), SourceType.OTHER)
        link = document.url or (finlex_url(document.identifier) if corpus == SourceType.FINLEX else "")
        section_label = section.section_number or section.title or ""
        body = section_text(document.title, section.title, section.content)

        texts = self.text_splitter.split_text(body) or [body]
        metadata: dict[str, Any] = {
            "corpus": corpus.value,
            "title": document.title,
            "link": link,
            "section": section_label,
            "identifier": document.identifier,
            "section_id": int(section.id) if section.id is not None else 0,
        }
        return texts, [dict(metadata) for _ in texts]

    async def index_sections(
        self,
        document: LegalDocument,
        sections: Sequence[DocumentSection],
        vectors: Sequence[list[float] | None] | None = None,
    ) -> int:
        """
        Add section texts of one document to the collection; returns the chunk count.

        `vectors` are the section embeddings already computed at ingestion, in
        section order. A section that fits in one chunk is indexed with its
        vector instead of being embedded again.
        """
        self.initialize()
        store = self.vector_store
        if store is None:
            logger.warning("skip indexing identifier=%s: vector store not configured", document.identifier)
            return 0

        texts: list[str] = []
        metadatas: list[dict[str, Any]] = []
        reusable: dict[str, list[float]] = {}
        for i, section in enumerate(sections):
            t, m = self._chunks_for(document, section)
            vector = vectors[i] if vectors is not None and i < len(vectors) else None
            if vector is not None and t == [section_text(document.title, section.title, section.content)]:
                reusable[t[0]] = list(vector)
            texts.extend(t)
            metadatas.extend(m)
        if not texts:
            return 0

        if reusable and self.embedding_function is not None:
            self.embedding_function.remember(reusable)
        try:
            _ = await asyncio.to_thread(store.add_texts, texts=texts, metadatas=metadatas)
        except Exception as e:
            logger.exception("indexing failed identifier=%s", document.identifier)
            raise UpstreamUnavailableError("Indexing legal sources failed") from e
        finally:
            if self.embedding_function is not None:
                self.embedding_function.forget(list(reusable))
        logger.info("indexed identifier=%s chunks=%s reused_vectors=%s", document.identifier, len(texts), len(reusable))
        return len(texts)
