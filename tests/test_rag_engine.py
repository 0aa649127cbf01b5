import pytest

from conftest import ScriptedGenerator, StubStore
from docchat.config.prompt_templates import ANALYSIS_EMPTY, CATEGORY_NOT_FOUND_RESPONSE, CHAT_SYSTEM_PROMPT, NO_CONTEXT_NOTICE, RAG_SYSTEM_PROMPT, SERVICE_UNAVAILABLE_RESPONSE
from docchat.src.core.errors import ChatServiceError, InputValidationError
from docchat.src.core.generator import GenerationOptions, chat_options, rag_options, rewrite_options
from docchat.src.core.memory import ConversationMemory
from docchat.src.core.rag_engine import ChatOrchestrator, build_contextual_prompt
from docchat.src.database.vector_store import Document

POLICY_DOC = Document("Remote work is allowed on Fridays.", {"title": "WFH", "category": "policy"}, score=0.91)
IT_DOC = Document("Passwords rotate every 90 days.", {"source_file": "security.md", "category": "it"}, score=0.82)


def _engine(store=None, generator=None, **kwargs) -> ChatOrchestrator:
    kwargs.setdefault("rewrite_query", False)
    return ChatOrchestrator(store or StubStore(), generator or ScriptedGenerator(), ConversationMemory(), **kwargs)


# ── Plain chat ────────────────────────────────────────────────────────

def test_two_exchanges_produce_four_ordered_turns():
    generator = ScriptedGenerator(["first reply", "second reply"])
    engine = _engine(generator=generator)

    assert engine.chat("s1", "hello") == "first reply"
    assert engine.chat("s1", "and again") == "second reply"

    turns = engine.get_conversation_history("s1")
    assert [(t.role, t.content) for t in turns] == [("user", "hello"), ("assistant", "first reply"), ("user", "and again"), ("assistant", "second reply")]
    assert [t.content for t in generator.calls[1]["history"]] == ["hello", "first reply"]


def test_chat_uses_chat_preset_and_system_prompt():
    generator = ScriptedGenerator()
    _engine(generator=generator).chat("s1", "hi")
    call = generator.calls[0]
    assert call["options"] == chat_options()
    assert call["system_prompt"] == CHAT_SYSTEM_PROMPT
    assert call["prompt"] == "hi"


def test_chat_options_override():
    generator = ScriptedGenerator()
    custom = GenerationOptions(model="gemini-test", temperature=0.1, top_p=0.5, max_output_tokens=64)
    _engine(generator=generator).chat("s1", "hi", options=custom)
    assert generator.calls[0]["options"] == custom


def test_chat_failure_raises_service_error_and_leaves_memory_untouched():
    engine = _engine(generator=ScriptedGenerator(fail=True))
    with pytest.raises(ChatServiceError) as excinfo:
        engine.chat("s1", "hi")
    assert "service call failed" in str(excinfo.value)
    assert engine.get_conversation_history("s1") == []


@pytest.mark.parametrize("message", ["", "   ", None])
def test_empty_message_rejected_before_any_call(message):
    store, generator = StubStore([POLICY_DOC]), ScriptedGenerator()
    engine = _engine(store, generator)
    with pytest.raises(InputValidationError):
        engine.chat("s1", message)
    with pytest.raises(InputValidationError):
        engine.chat_with_rag("s1", message)
    with pytest.raises(InputValidationError):
        engine.smart_chat("s1", message)
    assert generator.calls == []
    assert store.searches == []


# ── RAG chat ──────────────────────────────────────────────────────────

def test_rag_builds_context_prompt_and_records_raw_message():
    store, generator = StubStore([POLICY_DOC, IT_DOC]), ScriptedGenerator(["You can work remotely on Fridays."])
    engine = _engine(store, generator)

    answer = engine.chat_with_rag("s1", "Can I work from home?")

    assert answer == "You can work remotely on Fridays."
    call = generator.calls[0]
    assert "Document 1:\nRemote work is allowed on Fridays." in call["prompt"]
    assert "Document 2:\nPasswords rotate every 90 days." in call["prompt"]
    assert "Can I work from home?" in call["prompt"]
    assert call["options"] == rag_options()
    assert call["system_prompt"] == RAG_SYSTEM_PROMPT
    assert [t.content for t in engine.get_conversation_history("s1")] == ["Can I work from home?", "You can work remotely on Fridays."]


def test_rag_with_no_matches_still_calls_the_model():
    generator = ScriptedGenerator()
    engine = _engine(StubStore(), generator)

    engine.chat_with_rag("s1", "Anything about parking?")

    assert len(generator.calls) == 1
    assert NO_CONTEXT_NOTICE in generator.calls[0]["prompt"]
    assert len(engine.get_conversation_history("s1")) == 2


def test_rag_rewrites_query_for_retrieval_only():
    store = StubStore([POLICY_DOC])
    generator = ScriptedGenerator(["remote work policy", "final answer"])
    engine = _engine(store, generator, rewrite_query=True)

    assert engine.chat_with_rag("s1", "um, so can I like work at home?") == "final answer"

    assert store.searches[0]["query"] == "remote work policy"
    assert generator.calls[0]["options"] == rewrite_options()
    assert generator.calls[0]["history"] == []
    assert len(engine.get_conversation_history("s1")) == 2


def test_blank_rewrite_falls_back_to_original_message():
    store = StubStore([POLICY_DOC])
    engine = _engine(store, ScriptedGenerator(["   ", "answer"]), rewrite_query=True)
    engine.chat_with_rag("s1", "work from home?")
    assert store.searches[0]["query"] == "work from home?"


def test_rag_store_failure_wrapped():
    engine = _engine(StubStore(fail=True))
    with pytest.raises(ChatServiceError) as excinfo:
        engine.chat_with_rag("s1", "hi")
    assert excinfo.value.operation == "RAG"
    assert engine.get_conversation_history("s1") == []


# ── Category RAG ──────────────────────────────────────────────────────

def test_category_without_matches_short_circuits():
    store, generator = StubStore([IT_DOC]), ScriptedGenerator()
    engine = _engine(store, generator)

    response = engine.chat_with_rag_by_category("s1", "Can I work from home?", "policy")

    assert response == CATEGORY_NOT_FOUND_RESPONSE.format(category="policy")
    assert "policy" in response
    assert generator.calls == []
    assert engine.get_conversation_history("s1") == []
    assert store.searches[0]["category"] == "policy"


def test_category_with_matches_uses_chat_preset():
    store, generator = StubStore([POLICY_DOC, IT_DOC]), ScriptedGenerator()
    engine = _engine(store, generator)

    engine.chat_with_rag_by_category("s1", "work from home?", "policy")

    call = generator.calls[0]
    assert "Remote work is allowed on Fridays." in call["prompt"]
    assert "Passwords" not in call["prompt"]
    assert call["options"] == chat_options()
    assert call["system_prompt"] == CHAT_SYSTEM_PROMPT
    assert len(engine.get_conversation_history("s1")) == 2


def test_category_must_not_be_empty():
    with pytest.raises(InputValidationError):
        _engine().chat_with_rag_by_category("s1", "question", " ")


# ── Smart chat ────────────────────────────────────────────────────────

def test_smart_chat_routes_to_rag_when_probe_hits():
    store, generator = StubStore([POLICY_DOC]), ScriptedGenerator()
    _engine(store, generator).smart_chat("s1", "work from home?")
    assert store.searches[0]["top_k"] == 3
    assert generator.calls[0]["options"] == rag_options()


def test_smart_chat_routes_to_plain_chat_when_probe_misses():
    generator = ScriptedGenerator()
    _engine(StubStore(), generator).smart_chat("s1", "tell me a joke")
    assert generator.calls[0]["options"] == chat_options()
    assert generator.calls[0]["prompt"] == "tell me a joke"


def test_smart_chat_falls_back_to_plain_chat_on_store_failure():
    generator = ScriptedGenerator(["plain answer"])
    engine = _engine(StubStore(fail=True), generator)

    assert engine.smart_chat("s1", "hello") == "plain answer"
    assert generator.calls[0]["options"] == chat_options()
    assert len(engine.get_conversation_history("s1")) == 2


def test_smart_chat_never_raises_when_generator_is_down():
    engine = _engine(StubStore([POLICY_DOC]), ScriptedGenerator(fail=True))
    assert engine.smart_chat("s1", "hello") == SERVICE_UNAVAILABLE_RESPONSE
    assert engine.get_conversation_history("s1") == []


# ── Sessions ──────────────────────────────────────────────────────────

def test_start_new_conversation_clears_only_that_session():
    engine = _engine()
    engine.chat("a", "hi")
    engine.chat("b", "hi")
    engine.start_new_conversation("a")
    engine.start_new_conversation("a")
    assert engine.get_conversation_history("a") == []
    assert len(engine.get_conversation_history("b")) == 2


def test_session_info_counts_rounds():
    engine = _engine()
    engine.chat("s1", "one")
    engine.chat("s1", "two")
    assert engine.get_session_info("s1") == {"sessionId": "s1", "messageCount": 4, "conversationRounds": 2}


# ── Diagnostics ───────────────────────────────────────────────────────

def test_analyze_lists_ranked_documents_with_truncated_preview():
    long_doc = Document("x" * 250, {"source_file": "long.txt"}, score=0.5)
    generator = ScriptedGenerator()
    analysis = _engine(StubStore([POLICY_DOC, long_doc]), generator).analyze_document_relevance("anything")

    assert analysis.startswith("Found 2 relevant document(s):")
    assert "1. Source: WFH | Category: policy | Score: 0.910" in analysis
    assert "2. Source: long.txt" in analysis
    assert "x" * 200 + "..." in analysis
    assert "x" * 201 not in analysis
    assert generator.calls == []


def test_analyze_without_matches():
    assert _engine().analyze_document_relevance("anything") == ANALYSIS_EMPTY


def test_analyze_store_failure_wrapped():
    with pytest.raises(ChatServiceError):
        _engine(StubStore(fail=True)).analyze_document_relevance("anything")


def test_rag_system_status_reports_counts_and_categories():
    status = _engine(StubStore([POLICY_DOC, IT_DOC])).get_rag_system_status()
    assert "Total documents: 2" in status
    assert "pdf, txt, md" in status
    assert "  - it: 1 document(s)" in status
    assert "  - policy: 1 document(s)" in status


def test_build_contextual_prompt_numbers_documents():
    prompt = build_contextual_prompt("Q?", [POLICY_DOC, IT_DOC])
    assert prompt.index("Document 1:") < prompt.index("Document 2:") < prompt.index("Q?")
