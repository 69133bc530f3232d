from types import SimpleNamespace

from langchain_core.language_models.fake_chat_models import FakeListChatModel
from langchain_core.messages import AIMessage, AIMessageChunk, HumanMessage, SystemMessage

from compliance_qa.llm import (
    ChunkedText,
    LLMService,
    PlainText,
    StructuredText,
    UnrecognizedOutput,
    normalize_generation,
)
from compliance_qa.models import ChatMessage


def test_plain_strings_and_messages():
    assert normalize_generation("Section 2 applies.") == PlainText("Section 2 applies.")
    assert normalize_generation(AIMessage(content="From a message")) == PlainText("From a message")
    parts = AIMessage(content=[{"type": "text", "text": "Part one. "}, {"type": "text", "text": "Part two."}])
    assert normalize_generation(parts).text == "Part one. Part two."


def test_chunked_output_is_fully_drained():
    result = normalize_generation(chunk for chunk in ["Per ", "Section ", "4.2"])
    assert result == ChunkedText(text="Per Section 4.2", chunks=3)


def test_byte_chunks_split_inside_a_character():
    encoded = "Données".encode()
    result = normalize_generation(iter([encoded[:2], encoded[2:]]))
    assert result.text == "Données"


def test_message_chunks_are_concatenated():
    result = normalize_generation(iter([AIMessageChunk(content="Quote: "), AIMessageChunk(content='"24 hours"')]))
    assert result.text == 'Quote: "24 hours"'


def test_structured_response_field():
    assert normalize_generation({"response": "From a dict"}) == StructuredText("From a dict")
    assert normalize_generation(SimpleNamespace(response="From an object")) == StructuredText("From an object")


def test_unknown_shapes_are_serialised():
    assert normalize_generation({"answer": "wrong key"}) == UnrecognizedOutput('{"answer": "wrong key"}')
    assert normalize_generation(42) == UnrecognizedOutput("42")
    assert normalize_generation(None) == UnrecognizedOutput("null")


def test_service_converts_roles_and_invokes_model():
    messages = [
        ChatMessage(role="system", content="rules"),
        ChatMessage(role="user", content="q1"),
        ChatMessage(role="assistant", content="a1"),
        ChatMessage(role="user", content="q2"),
    ]
    converted = LLMService.to_langchain(messages)
    assert [type(m) for m in converted] == [SystemMessage, HumanMessage, AIMessage, HumanMessage]

    service = LLMService(FakeListChatModel(responses=["Section 4.2 says so."]))
    raw = service.generate(messages, temperature=0.01, max_tokens=1500)
    assert normalize_generation(raw).text == "Section 4.2 says so."


def test_service_streaming_is_drained_into_one_answer():
    service = LLMService(FakeListChatModel(responses=["Streamed answer"]), stream=True)
    raw = service.generate([ChatMessage(role="user", content="q")], temperature=0.01, max_tokens=10)
    result = normalize_generation(raw)
    assert result.kind == "chunked"
    assert result.text == "Streamed answer"
