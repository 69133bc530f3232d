"""LangGraph definition of the retrieve-assemble-generate-persist pipeline."""
from __future__ import annotations

import json
import logging
import uuid
from typing import Any, Protocol, TypedDict

from langgraph.graph import END, START, StateGraph

from .context import ContextAssembler
from .llm import normalize_generation
from .models import AssembledContext, ChatMessage, QAFailure, QAResponse, QueryDiagnostics, RetrievalResult
from .observability import GENERATION_OUTCOMES, traced_span
from .prompts import build_system_message
from .retrieval import HybridRetriever
from .session import SessionLockRegistry, SessionStore

FAILURE_MESSAGE = "Failed to process your request"


class Generator(Protocol):
    def generate(self, messages: list[ChatMessage], *, temperature: float, max_tokens: int) -> Any: ...


class GraphState(TypedDict, total=False):
    session_id: str
    query: str
    history: list[ChatMessage]
    user_message: ChatMessage
    retrieval: RetrievalResult
    assembled: AssembledContext
    system_message: str
    messages: list[ChatMessage]
    answer: ChatMessage
    stored_messages: int
    response: QAResponse


class ComplianceChatAgent:
    """Answers one query per call against the documents and the session's history.

    Any exception raised by a stage ends the run as a ``QAFailure``; session
    history is written only by the ``persist`` stage, after generation
    succeeded.
    """

    def __init__(
        self,
        retriever: HybridRetriever,
        assembler: ContextAssembler,
        generator: Generator,
        sessions: SessionStore,
        *,
        locks: SessionLockRegistry | None = None,
        history_window: int = 2,
        temperature: float = 0.01,
        max_tokens: int = 1500,
        logger: logging.Logger | None = None,
    ) -> None:
        self.retriever = retriever
        self.assembler = assembler
        self.generator = generator
        self.sessions = sessions
        self.locks = locks or SessionLockRegistry()
        self.history_window = history_window
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.logger = logger or logging.getLogger(__name__)
        self.compiled = self.build_graph().compile()

    def receive_node(self, state: GraphState) -> GraphState:
        query = state["query"].strip()
        if not query:
            raise ValueError("Query must not be empty")
        self.logger.info("Processing query for session %s: %s", state["session_id"], query)
        history = self.sessions.read_tail(state["session_id"], self.history_window)
        return {"query": query, "history": history, "user_message": ChatMessage(role="user", content=query)}

    def retrieve_node(self, state: GraphState) -> GraphState:
        with traced_span("retrieve"):
            retrieval = self.retriever.retrieve(state["query"])
        self.logger.info("Retrieved %d candidates via %s", len(retrieval.candidates), retrieval.source)
        return {"retrieval": retrieval}

    def assemble_node(self, state: GraphState) -> GraphState:
        assembled = self.assembler.render(state["retrieval"].candidates, state["query"])
        system_message = build_system_message(assembled.text)
        messages = [
            ChatMessage(role="system", content=system_message),
            *state["history"],
            state["user_message"],
        ]
        self.logger.info(
            "Prompt: %d messages, system message %d chars, total %d chars",
            len(messages),
            len(system_message),
            len(json.dumps([message.to_dict() for message in messages])),
        )
        return {"assembled": assembled, "system_message": system_message, "messages": messages}

    def generate_node(self, state: GraphState) -> GraphState:
        with traced_span("generate"):
            try:
                raw = self.generator.generate(
                    state["messages"], temperature=self.temperature, max_tokens=self.max_tokens
                )
                result = normalize_generation(raw)
            except Exception:
                GENERATION_OUTCOMES.labels("error").inc()
                raise
        GENERATION_OUTCOMES.labels(result.kind).inc()
        if result.kind == "unrecognized":
            self.logger.warning("Unrecognised generation output; using its serialised form")
        return {"answer": ChatMessage(role="assistant", content=result.text)}

    def persist_node(self, state: GraphState) -> GraphState:
        stored = self.sessions.append(state["session_id"], [state["user_message"], state["answer"]])
        return {"stored_messages": len(stored)}

    def respond_node(self, state: GraphState) -> GraphState:
        assembled = state["assembled"]
        response = QAResponse(
            response=state["answer"].content,
            context=assembled.citations,
            debug=QueryDiagnostics(
                documents_found=len(state["retrieval"].candidates),
                context_length=len(assembled.text),
                prompt_length=len(state["system_message"]),
            ),
            session_id=state["session_id"],
        )
        return {"response": response}

    def build_graph(self) -> StateGraph:
        graph = StateGraph(GraphState)
        graph.add_node("receive", self.receive_node)
        graph.add_node("retrieve", self.retrieve_node)
        graph.add_node("assemble", self.assemble_node)
        graph.add_node("generate", self.generate_node)
        graph.add_node("persist", self.persist_node)
        graph.add_node("respond", self.respond_node)
        graph.add_edge(START, "receive")
        graph.add_edge("receive", "retrieve")
        graph.add_edge("retrieve", "assemble")
        graph.add_edge("assemble", "generate")
        graph.add_edge("generate", "persist")
        graph.add_edge("persist", "respond")
        graph.add_edge("respond", END)
        return graph

    def run(self, query: str, session_id: str | None = None) -> QAResponse | QAFailure:
        session_id = session_id or str(uuid.uuid4())
        with self.locks.hold(session_id):
            try:
                with traced_span("query"):
                    final_state = self.compiled.invoke({"session_id": session_id, "query": query})
            except Exception as exc:  # noqa: BLE001
                self.logger.exception("Chat agent error for session %s", session_id)
                return QAFailure(error=FAILURE_MESSAGE, details=str(exc) or type(exc).__name__, session_id=session_id)
        return final_state["response"]
