"""Load legal documents from JSON files into the database and the vector store"""
import argparse
import asyncio
import json
import logging
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from langchain_openai import OpenAIEmbeddings
from pydantic import SecretStr, ValidationError

from lakiapu.config import get_settings
from lakiapu.database import Database
from lakiapu.exceptions import InvalidInputError
from lakiapu.schemas.legal import DocumentIn
from lakiapu.services.document_ingestion import DocumentIngestionService
from lakiapu.services.retrieval import VectorLegalRetriever
from lakiapu.utils.logging_config import setup_logging

logger = logging.getLogger("lakiapu.ingest")


def load_documents(directory: str) -> list[DocumentIn]:
    """Each *.json file holds one document object or a list of them"""
    documents: list[DocumentIn] = []
    for filename in sorted(os.listdir(directory)):
        if not filename.endswith(".json"):
            continue
        filepath = os.path.join(directory, filename)
        with open(filepath, "r", encoding="utf-8") as f:
            data = json.load(f)
        items = data if isinstance(data, list) else [data]
        for item in items:
            try:
                documents.append(DocumentIn.model_validate(item))
            except ValidationError as e:
                logger.error("skip invalid document in %s: %s", filename, e.errors()[0].get("msg"))
        logger.info("loaded %s", filename)
    return documents


async def ingest(directory: str) -> int:
    settings = get_settings()
    database = Database(settings.database_url)
    await database.init()

    embeddings: OpenAIEmbeddings | None = None
    if settings.openai_api_key:
        embeddings = OpenAIEmbeddings(
            model=settings.embedding_model,
            api_key=SecretStr(settings.openai_api_key),
            base_url=settings.openai_base_url,
        )
    else:
        logger.warning("OPENAI_API_KEY is not set; sections are stored without embeddings and not indexed")
    service = DocumentIngestionService(embeddings, VectorLegalRetriever(settings, embeddings=embeddings))

    stored = 0
    try:
        async with database.session_factory() as db:
            for doc in load_documents(directory):
                try:
                    _ = await service.ingest(db, doc)
                    stored += 1
                except InvalidInputError as e:
                    logger.warning("skip %s: %s", doc.identifier, e.message)
    finally:
        await database.close()
    return stored


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    _ = parser.add_argument("directory", help="directory containing *.json document files")
    args = parser.parse_args(argv)

    settings = get_settings()
    setup_logging(settings.log_level, settings.log_dir, "lakiapu_ingest")

    if not os.path.isdir(args.directory):
        logger.error("directory does not exist: %s", args.directory)
        return 1

    stored = asyncio.run(ingest(args.directory))
    logger.info("ingested %s documents", stored)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
