"""Orchestrator: retrieves the owner's relevant chunks, assembles the prompt,
and asks the LLM for a grounded answer."""

from __future__ import annotations

import asyncio
import logging

from docrag.ingestion.schemas import RetrievedChunk
from docrag.services.llm import ChatClient
from docrag.services.retriever import NO_DOCUMENTS_MARKER, Retriever, build_context

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You are a helpful AI assistant that can answer questions about the user's
documents and provide general assistance.
"""

USER_PROMPT_TEMPLATE = """\
{context}

User's question: {question}

Please provide a helpful response. If the question relates to information in
the user's documents, use that information in your response. If you reference
document information, mention which document it came from.
"""


def build_prompt(question: str, results: list[RetrievedChunk], k: int = 10) -> str:
    """Instructions, retrieved context (or the no-documents marker) and the question."""
    context = build_context(results, k)
    if context:
        context = f"Relevant information from your documents:\n\n{context}"
    else:
        context = NO_DOCUMENTS_MARKER
    return USER_PROMPT_TEMPLATE.format(context=context, question=question)


def referenced_documents(results: list[RetrievedChunk]) -> list[str]:
    """Filenames of the retrieved chunks, de-duplicated, first-seen order."""
    names: dict[str, None] = {}
    for r in results:
        if r.filename:
            names.setdefault(r.filename, None)
    return list(names)


class AnswerService:
    """End-to-end question answering: retrieve → assemble → generate."""

    def __init__(self, retriever: Retriever, llm: ChatClient, context_top_k: int = 10) -> None:
        self._retriever = retriever
        self._llm = llm
        self._k = context_top_k

    async def answer(self, question: str, owner_id: str) -> dict:
        """Returns a dict with ``response`` and ``documents_referenced``."""
        results = await self._retriever.retrieve(question, owner_id)
        top = results[: self._k]
        prompt = build_prompt(question, top, self._k)
        logger.info("Answering with %d context chunks for owner %s.", len(top), owner_id)
        reply = await asyncio.to_thread(self._llm.chat, SYSTEM_PROMPT, prompt, max_tokens=2048)
        return {
            "response": reply,
            "documents_referenced": referenced_documents(top),
        }
