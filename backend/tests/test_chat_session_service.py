import pytest
from sqlalchemy import select

from lakiapu.database import Database
from lakiapu.exceptions import InvalidInputError, NotFoundError, UnsupportedFileTypeError, UploadTooLargeError
from lakiapu.models.chat import DEFAULT_SESSION_TITLE, ChatSession, Query
from lakiapu.schemas.chat import Confidence
from lakiapu.services.answer_generation import GeneratedAnswer
from lakiapu.services.chat_session import ChatSessionService, title_from_question
from lakiapu.services.legal_query import IncomingFile, LegalQueryOrchestrator

MIB = 1024 * 1024


@pytest.fixture
def service(fake_retriever, fake_generator, storage, settings) -> ChatSessionService:
    orchestrator = LegalQueryOrchestrator(fake_retriever, fake_generator, storage, settings)
    return ChatSessionService(orchestrator, settings)


def _file(name: str = "a.pdf", content_type: str = "application/pdf", size: int = 10) -> IncomingFile:
    return IncomingFile(filename=name, content_type=content_type, data=b"x" * size)


class TestTitleFromQuestion:
    def test_long_question_is_truncated_to_fifty(self):
        title = title_from_question("a" * 80)
        assert title == "a" * 47 + "..."
        assert len(title) == 50

    def test_exactly_fifty_is_kept(self):
        assert title_from_question("b" * 50) == "b" * 50

    def test_short_question_is_trimmed(self):
        assert title_from_question("  Vuokrasopimus  ") == "Vuokrasopimus"

    def test_attachment_only_uses_first_filename(self):
        files = [_file("irtisanomisilmoitus.pdf"), _file("liite.png", "image/png")]
        assert title_from_question("   ", files) == "irtisanomisilmoitus.pdf"

    def test_nothing_keeps_default(self):
        assert title_from_question("") == DEFAULT_SESSION_TITLE


class TestValidateMessage:
    def test_question_is_trimmed(self, service: ChatSessionService):
        assert service.validate_message("  Kysymys  ", []) == "Kysymys"

    def test_empty_without_files(self, service: ChatSessionService):
        with pytest.raises(InvalidInputError):
            _ = service.validate_message("  ", [])

    def test_empty_with_files_is_allowed(self, service: ChatSessionService):
        assert service.validate_message("", [_file()]) == ""

    def test_unsupported_type(self, service: ChatSessionService):
        with pytest.raises(UnsupportedFileTypeError) as exc_info:
            _ = service.validate_message("q", [_file("x.zip", "application/zip")])
        assert exc_info.value.status_code == 400

    def test_aggregate_size_limit(self, service: ChatSessionService):
        files = [_file(size=3 * MIB), _file(size=3 * MIB)]
        with pytest.raises(UploadTooLargeError) as exc_info:
            _ = service.validate_message("q", files)
        assert exc_info.value.error_code == "UPLOAD_TOO_LARGE"
        assert exc_info.value.status_code == 400

    def test_exactly_at_limit_is_allowed(self, service: ChatSessionService):
        assert service.validate_message("q", [_file(size=5 * MIB)]) == "q"

    def test_too_many_files(self, service: ChatSessionService):
        files = [_file() for _ in range(service.max_attachments + 1)]
        with pytest.raises(InvalidInputError):
            _ = service.validate_message("q", files)


@pytest.mark.asyncio
async def test_session_crud(service: ChatSessionService, test_session):
    created = await service.create_session(test_session)
    sid = created.session.id
    assert created.session.title == DEFAULT_SESSION_TITLE
    assert created.session.is_pinned is False
    assert created.queries == []

    renamed = await service.rename_session(test_session, sid, "  Työsopimus ")
    assert renamed.session.title == "Työsopimus"

    pinned = await service.toggle_pin(test_session, sid, True)
    assert pinned.session.is_pinned is True

    with pytest.raises(InvalidInputError):
        _ = await service.rename_session(test_session, sid, "")

    await service.delete_session(test_session, sid)
    with pytest.raises(NotFoundError):
        _ = await service.get_session(test_session, sid)
    with pytest.raises(NotFoundError):
        await service.delete_session(test_session, sid)


@pytest.mark.asyncio
async def test_first_message_titles_session_once(service: ChatSessionService, test_session):
    sid = (await service.create_session(test_session)).session.id

    _ = await service.add_message(test_session, sid, "Miten irtisanon vuokrasopimuksen?")
    _ = await service.add_message(test_session, sid, "Entä jos vuokranantaja ei vastaa?")

    view = await service.get_session(test_session, sid)
    assert view.session.title == "Miten irtisanon vuokrasopimuksen?"
    assert [q.question for q in view.queries] == [
        "Miten irtisanon vuokrasopimuksen?",
        "Entä jos vuokranantaja ei vastaa?",
    ]


@pytest.mark.asyncio
async def test_first_message_title_replaces_earlier_rename(service: ChatSessionService, test_session):
    sid = (await service.create_session(test_session)).session.id
    _ = await service.rename_session(test_session, sid, "Oma nimi")

    _ = await service.add_message(test_session, sid, "Kysymys")

    assert (await service.get_session(test_session, sid)).session.title == "Kysymys"


@pytest.mark.asyncio
async def test_invalid_message_does_not_touch_session(service: ChatSessionService, fake_generator, test_session):
    sid = (await service.create_session(test_session)).session.id

    with pytest.raises(UploadTooLargeError):
        _ = await service.add_message(test_session, sid, "Kysymys", [_file(size=6 * MIB)])

    view = await service.get_session(test_session, sid)
    assert view.session.title == DEFAULT_SESSION_TITLE
    assert view.queries == []
    assert fake_generator.calls == []


@pytest.mark.asyncio
async def test_add_message_unknown_session(service: ChatSessionService, fake_generator, test_session):
    with pytest.raises(NotFoundError):
        _ = await service.add_message(test_session, 4242, "Kysymys")
    assert fake_generator.calls == []


@pytest.mark.asyncio
async def test_list_sessions_carries_latest_query_only(service: ChatSessionService, test_session):
    first = (await service.create_session(test_session)).session.id
    second = (await service.create_session(test_session)).session.id
    _ = await service.add_message(test_session, first, "Yksi")
    _ = await service.add_message(test_session, first, "Kaksi")

    views = await service.list_sessions(test_session)

    assert [v.session.id for v in views] == [second, first]
    assert views[0].queries == []
    assert [q.question for q in views[1].queries] == ["Kaksi"]
    assert views[1].session.title == "Yksi"


@pytest.mark.asyncio
async def test_list_sessions_empty(service: ChatSessionService, test_session):
    assert await service.list_sessions(test_session) == []


class _TitleReadingGenerator:
    """Reads the session title through its own connection when asked to answer"""

    configured = True

    def __init__(self, database: Database):
        self.database = database
        self.session_id: int | None = None
        self.seen_titles: list[str] = []

    async def generate(self, question, context=None, file_summaries=None, language_mode="regular"):
        async with self.database.session_factory() as other:
            title = (
                await other.execute(select(ChatSession.title).where(ChatSession.id == self.session_id))
            ).scalar_one()
        self.seen_titles.append(title)
        return GeneratedAnswer(answer="Vastaus", confidence=Confidence(score=0.7, reasoning=""))


@pytest.mark.asyncio
async def test_first_message_title_is_committed_before_generation(tmp_path, fake_retriever, storage, settings):
    # file database: separate connections only see committed rows
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'titles.db'}")
    await database.init()
    try:
        generator = _TitleReadingGenerator(database)
        orchestrator = LegalQueryOrchestrator(fake_retriever, generator, storage, settings)  # type: ignore[arg-type]
        service = ChatSessionService(orchestrator, settings)

        async with database.session_factory() as db:
            sid = (await service.create_session(db)).session.id
            generator.session_id = sid
            _ = await service.add_message(db, sid, "a" * 80)
            _ = await service.add_message(db, sid, "Toinen kysymys")

        assert generator.seen_titles == ["a" * 47 + "...", "a" * 47 + "..."]
    finally:
        await database.close()


@pytest.mark.asyncio
async def test_average_confidence_counts_missing_scores_as_zero(
    service: ChatSessionService, fake_generator, test_session
):
    sid = (await service.create_session(test_session)).session.id
    fake_generator.answer = GeneratedAnswer(answer="Vastaus", confidence=Confidence(score=0.9, reasoning=""))
    _ = await service.add_message(test_session, sid, "Ensimmäinen")
    test_session.add(Query(session_id=sid, question="Vanha", answer="Ilman arviota", confidence=None))
    await test_session.commit()

    analysis = await service.analyze_session(test_session, sid)

    assert analysis.summary.total_queries == 2
    assert analysis.summary.average_confidence == pytest.approx(0.45)
    assert [t.confidence for t in analysis.timeline] == [0.9, None]
