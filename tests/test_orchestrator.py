import asyncio
import time
from unittest.mock import MagicMock

import pytest
from bson import ObjectId

from digitalius.core.config import settings
from digitalius.core.errors import (
    ClassificationUnavailable,
    QueryValidationError,
    StoreUnavailable,
    UpstreamServiceError,
)
from digitalius.pipeline.dispatcher import CollectionDispatcher
from digitalius.pipeline.orchestrator import (
    InlineStrategy,
    QueryPipeline,
    TwoPhaseStrategy,
    is_greeting,
    needs_short_circuit,
    validate_query,
)
from digitalius.prompts.constants import CANNOT_HELP_ANSWER, GREETING_ANSWER, NO_RESULTS_ANSWER
from digitalius.schemas.intent import DocumentType, Intent, IntentKind
from digitalius.schemas.pipeline import Complete, NeedsContext, PipelineRun, PipelineState
from digitalius.schemas.records import DocumentKind, FetchResult, TaggedRecord
from digitalius.services.document_store import DocumentStore

from tests.conftest import COLLECTION_NAMES, TEST_DB, TOTAL_ARTICLES, FakeClassifier, FakeSynthesizer

NOTICE_QUERY = "¿Qué dice la circular 06/20?"
NOTICE_INTENT = Intent(kind=IntentKind.SEARCH_INFO, document_type=DocumentType.NOTICE, keywords=("06/20",))


class TestHelpers:
    @pytest.mark.parametrize("query", ["hola", "Hola, ¿cómo estás?", "Buenos días", "buenas noches!", "HI"])
    def test_greetings(self, query):
        assert is_greeting(query)

    @pytest.mark.parametrize("query", ["holanda", "chip", "circular 06/20", ""])
    def test_not_greetings(self, query):
        assert not is_greeting(query)

    def test_validate_query_strips(self):
        assert validate_query("  circular 06/20 ") == "circular 06/20"

    @pytest.mark.parametrize("query", [None, "", "   "])
    def test_validate_query_rejects_empty(self, query):
        with pytest.raises(QueryValidationError):
            validate_query(query)

    def test_validate_query_rejects_too_long(self):
        validate_query("x" * settings.query_max_length)
        with pytest.raises(QueryValidationError):
            validate_query("x" * (settings.query_max_length + 1))

    def test_short_circuit_rules(self):
        assert needs_short_circuit(Intent.unknown())
        assert needs_short_circuit(Intent(kind=IntentKind.SEARCH_INFO))
        assert not needs_short_circuit(Intent(kind=IntentKind.SEARCH_INFO, year=2020))
        assert not needs_short_circuit(Intent(kind=IntentKind.COUNT_ITEMS))
        assert not needs_short_circuit(Intent(kind=IntentKind.SEARCH_LATEST))

    def test_illegal_transition(self):
        run = PipelineRun(query="q")
        with pytest.raises(RuntimeError):
            run.advance(PipelineState.SYNTHESIZED)

    def test_run_is_finished_only_in_terminal_states(self):
        run = PipelineRun(query="q")
        run.advance(PipelineState.CLASSIFIED)
        assert not run.finished
        run.advance(PipelineState.CONTEXT_REQUIRED)
        assert not run.finished
        run.advance(PipelineState.DISPATCHED)
        run.advance(PipelineState.NORMALIZED)
        run.advance(PipelineState.NO_RESULTS)
        assert run.finished


class TestInlineStrategy:
    @pytest.mark.asyncio
    async def test_search_by_notice_number(self, make_pipeline, synthesizer):
        pipeline = make_pipeline(FakeClassifier({NOTICE_QUERY: NOTICE_INTENT}))
        result = await InlineStrategy(pipeline).run(NOTICE_QUERY)

        assert result.state == PipelineState.SYNTHESIZED
        assert result.intent == NOTICE_INTENT
        assert result.payload.answer == synthesizer.answer
        assert len(result.payload.results) == 1
        record = result.payload.results[0]
        assert record["numero"] == "06/20"
        assert record["palabras_clave"] == ["feria", "receso", "invierno"]
        assert record["entidades_afectadas"] == [{"nombre_entidad": "Mesa de Entradas", "tipo": "modificación"}]

        (context,) = synthesizer.contexts
        assert context.query == NOTICE_QUERY
        assert context.document_type == "notice"
        assert context.intent_kind == "search_info"
        assert context.results_count == 1
        assert '"numero": "06/20"' in context.context
        assert "_id" not in context.context

    @pytest.mark.asyncio
    async def test_count_regulation_articles(self, make_pipeline, synthesizer):
        intent = Intent(kind=IntentKind.COUNT_ITEMS, document_type=DocumentType.REGULATION)
        pipeline = make_pipeline(FakeClassifier(default=intent))
        result = await InlineStrategy(pipeline).run("¿Cuántos artículos tiene el reglamento?")

        assert result.state == PipelineState.SYNTHESIZED
        assert result.payload.results == []
        (context,) = synthesizer.contexts
        assert context.context == str(TOTAL_ARTICLES)
        assert context.results_count == TOTAL_ARTICLES
        assert context.regulation_link == settings.regulation_link

    @pytest.mark.asyncio
    async def test_count_of_zero_is_still_synthesized(self, make_pipeline, synthesizer):
        intent = Intent(kind=IntentKind.COUNT_ITEMS, document_type=DocumentType.NOTICE, keywords=("jurisprudencia",))
        pipeline = make_pipeline(FakeClassifier(default=intent))
        result = await InlineStrategy(pipeline).run("¿Cuántas circulares hablan de jurisprudencia?")
        assert result.state == PipelineState.SYNTHESIZED
        assert synthesizer.contexts[0].context == "0"

    @pytest.mark.asyncio
    async def test_greeting_never_touches_store_or_synthesis(self, make_pipeline, store, synthesizer):
        classifier = FakeClassifier()
        result = await InlineStrategy(make_pipeline(classifier)).run("hola")

        assert result.state == PipelineState.SHORT_CIRCUITED
        assert result.payload.answer == GREETING_ANSWER
        assert result.payload.results == []
        assert classifier.calls == ["hola"]
        assert store.reads == 0
        assert synthesizer.contexts == []

    @pytest.mark.asyncio
    async def test_unknown_non_greeting(self, make_pipeline, store):
        result = await InlineStrategy(make_pipeline(FakeClassifier())).run("¿Qué hora es en Tokio?")
        assert result.payload.answer == CANNOT_HELP_ANSWER
        assert store.reads == 0

    @pytest.mark.asyncio
    async def test_search_without_terms_short_circuits(self, make_pipeline, store):
        intent = Intent(kind=IntentKind.SEARCH_INFO, document_type=DocumentType.ALL)
        result = await InlineStrategy(make_pipeline(FakeClassifier(default=intent))).run("documentos")
        assert result.state == PipelineState.SHORT_CIRCUITED
        assert result.payload.answer == CANNOT_HELP_ANSWER
        assert store.reads == 0

    @pytest.mark.asyncio
    async def test_classifier_failure_is_treated_as_unknown(self, make_pipeline, store):
        classifier = FakeClassifier(error=ClassificationUnavailable("model down"))
        pipeline = make_pipeline(classifier)

        result = await InlineStrategy(pipeline).run("Buenos días")
        assert result.payload.answer == GREETING_ANSWER

        result = await InlineStrategy(pipeline).run("circular 06/20")
        assert result.payload.answer == CANNOT_HELP_ANSWER
        assert store.reads == 0

    @pytest.mark.asyncio
    async def test_no_results_skips_synthesis(self, make_pipeline, store, synthesizer):
        intent = Intent(kind=IntentKind.SEARCH_INFO, document_type=DocumentType.ALL, keywords=("jurisprudencia marítima",))
        result = await InlineStrategy(make_pipeline(FakeClassifier(default=intent))).run("jurisprudencia marítima")

        assert result.state == PipelineState.NO_RESULTS
        assert result.payload.answer == NO_RESULTS_ANSWER
        assert result.payload.results == []
        assert store.reads == 3
        assert synthesizer.contexts == []

    @pytest.mark.asyncio
    async def test_latest_instruction(self, make_pipeline, synthesizer):
        intent = Intent.from_payload({"kind": "search_latest", "documentType": "instructivo", "subType": "interno"})
        result = await InlineStrategy(make_pipeline(FakeClassifier(default=intent))).run(
            "¿Cuál es el último instructivo interno?"
        )
        assert [r["titulo"] for r in result.payload.results] == ["I141 - Firma digital"]
        assert synthesizer.contexts[0].intent_kind == "search_latest"

    @pytest.mark.asyncio
    async def test_validation_error(self, make_pipeline):
        with pytest.raises(QueryValidationError):
            await InlineStrategy(make_pipeline(FakeClassifier())).run("   ")

    @pytest.mark.asyncio
    async def test_synthesis_failure_propagates(self, make_pipeline):
        synth = FakeSynthesizer(error=UpstreamServiceError("model down"))
        pipeline = make_pipeline(FakeClassifier(default=NOTICE_INTENT), synth)
        with pytest.raises(UpstreamServiceError):
            await InlineStrategy(pipeline).run(NOTICE_QUERY)

    @pytest.mark.asyncio
    async def test_timeout_surfaces_as_upstream_error(self, make_pipeline):
        synth = FakeSynthesizer(delay=5)
        pipeline = make_pipeline(FakeClassifier(default=NOTICE_INTENT), synth)
        with pytest.raises(UpstreamServiceError):
            await InlineStrategy(pipeline, timeout=0.5).run(NOTICE_QUERY)

    @pytest.mark.asyncio
    async def test_store_failure_propagates(self, synthesizer):
        pipeline = QueryPipeline(
            classifier=FakeClassifier(default=NOTICE_INTENT),
            dispatcher=CollectionDispatcher(DocumentStore(uri="", database_name=TEST_DB)),
            synthesizer=synthesizer,
        )
        with pytest.raises(StoreUnavailable):
            await InlineStrategy(pipeline).run(NOTICE_QUERY)
        assert synthesizer.contexts == []


class TestTwoPhaseStrategy:
    @pytest.mark.asyncio
    async def test_begin_requests_context(self, make_pipeline, store):
        strategy = TwoPhaseStrategy(make_pipeline(FakeClassifier(default=NOTICE_INTENT)))
        step = await strategy.begin(NOTICE_QUERY)
        assert isinstance(step, NeedsContext)
        assert step.intent == NOTICE_INTENT
        assert store.reads == 0

    @pytest.mark.asyncio
    async def test_begin_completes_greeting(self, make_pipeline):
        step = await TwoPhaseStrategy(make_pipeline(FakeClassifier())).begin("hola")
        assert isinstance(step, Complete)
        assert step.payload.answer == GREETING_ANSWER

    @pytest.mark.asyncio
    async def test_same_result_as_inline(self, make_pipeline):
        pipeline = make_pipeline(FakeClassifier(default=NOTICE_INTENT))
        inline = await InlineStrategy(pipeline).run(NOTICE_QUERY)

        strategy = TwoPhaseStrategy(pipeline)
        step = await strategy.begin(NOTICE_QUERY)
        fetched = await strategy.fetch(NOTICE_QUERY, step.intent)
        resumed = await strategy.resume(NOTICE_QUERY, step.intent, fetched)

        assert resumed.state == inline.state
        assert resumed.payload == inline.payload

    @pytest.mark.asyncio
    async def test_resume_normalizes_caller_records(self, make_pipeline, synthesizer):
        oid = ObjectId()
        raw = TaggedRecord(kind=DocumentKind.NOTICE, data={
            "_id": oid, "numero": "06/20", "link_acceso": "https://x/06-20.pdf", "tema": None,
        })
        fetched = FetchResult(records=[raw, raw], collections_searched=["circulares"])

        strategy = TwoPhaseStrategy(make_pipeline(FakeClassifier()))
        result = await strategy.resume(NOTICE_QUERY, NOTICE_INTENT, fetched)

        assert result.state == PipelineState.SYNTHESIZED
        assert result.payload.results == [
            {"_id": str(oid), "numero": "06/20", "link_de_acceso": "https://x/06-20.pdf"},
        ]
        assert synthesizer.contexts[0].results_count == 1

    @pytest.mark.asyncio
    async def test_resume_with_empty_context(self, make_pipeline):
        strategy = TwoPhaseStrategy(make_pipeline(FakeClassifier()))
        result = await strategy.resume(NOTICE_QUERY, NOTICE_INTENT, FetchResult())
        assert result.state == PipelineState.NO_RESULTS
        assert result.payload.answer == NO_RESULTS_ANSWER

    @pytest.mark.asyncio
    async def test_resume_rejects_intents_without_context(self, make_pipeline):
        strategy = TwoPhaseStrategy(make_pipeline(FakeClassifier()))
        with pytest.raises(QueryValidationError):
            await strategy.resume("hola", Intent.unknown(), FetchResult())


class SlowCursor:
    """Cursor stand-in that takes ``delay`` seconds to produce each document."""

    def __init__(self, docs, delay):
        self.docs = docs
        self.delay = delay
        self.served = 0

    def sort(self, *args, **kwargs):
        return self

    def limit(self, *args, **kwargs):
        return self

    def __iter__(self):
        for doc in self.docs:
            time.sleep(self.delay)
            self.served += 1
            yield doc


class SlowDispatcher:
    def __init__(self, inner, delay):
        self.inner = inner
        self.delay = delay

    async def dispatch(self, intent):
        await asyncio.sleep(self.delay)
        return await self.inner.dispatch(intent)


class TestRequestDeadline:
    @pytest.mark.asyncio
    async def test_timeout_stops_running_store_read(self, synthesizer):
        cursor = SlowCursor([{"_id": i, "numero": f"{i}/20"} for i in range(20)], delay=0.05)
        client = MagicMock()
        client.__getitem__.return_value.__getitem__.return_value.find.return_value = cursor
        store = DocumentStore(database_name=TEST_DB, client=client, collection_names=dict(COLLECTION_NAMES))
        intent = Intent(kind=IntentKind.SEARCH_INFO, document_type=DocumentType.NOTICE, keywords=("feria",))
        pipeline = QueryPipeline(
            classifier=FakeClassifier(default=intent),
            dispatcher=CollectionDispatcher(store),
            synthesizer=synthesizer,
        )

        with pytest.raises(UpstreamServiceError):
            await InlineStrategy(pipeline, timeout=0.2).run("circulares sobre la feria")

        # Long enough for an unbounded read of every document to have finished
        await asyncio.sleep(1.2)
        assert 0 < cursor.served < len(cursor.docs)
        assert synthesizer.contexts == []

    @pytest.mark.asyncio
    async def test_two_phase_answer_shares_one_timeout(self, dispatcher):
        pipeline = QueryPipeline(
            classifier=FakeClassifier(),
            dispatcher=SlowDispatcher(dispatcher, delay=0.15),
            synthesizer=FakeSynthesizer(delay=0.15),
        )
        with pytest.raises(UpstreamServiceError):
            await TwoPhaseStrategy(pipeline, timeout=0.2).answer(NOTICE_QUERY, NOTICE_INTENT)

    @pytest.mark.asyncio
    async def test_two_phase_answer_matches_inline(self, make_pipeline):
        pipeline = make_pipeline(FakeClassifier(default=NOTICE_INTENT))
        inline = await InlineStrategy(pipeline).run(NOTICE_QUERY)
        answered = await TwoPhaseStrategy(pipeline).answer(NOTICE_QUERY, NOTICE_INTENT)
        assert answered.state == PipelineState.SYNTHESIZED
        assert answered.payload == inline.payload

    @pytest.mark.asyncio
    async def test_two_phase_answer_rejects_intents_without_context(self, make_pipeline):
        with pytest.raises(QueryValidationError):
            await TwoPhaseStrategy(make_pipeline(FakeClassifier())).answer("hola", Intent.unknown())


class TestRegulationLink:
    @pytest.mark.asyncio
    async def test_not_sent_for_notice_queries(self, make_pipeline, synthesizer):
        await InlineStrategy(make_pipeline(FakeClassifier(default=NOTICE_INTENT))).run(NOTICE_QUERY)
        assert synthesizer.contexts[0].regulation_link is None

    @pytest.mark.asyncio
    async def test_sent_when_all_collections_are_searched(self, make_pipeline, synthesizer):
        intent = Intent(kind=IntentKind.SEARCH_INFO, document_type=DocumentType.ALL, keywords=("notificaciones",))
        await InlineStrategy(make_pipeline(FakeClassifier(default=intent))).run("notificaciones")
        assert synthesizer.contexts[0].regulation_link == settings.regulation_link
