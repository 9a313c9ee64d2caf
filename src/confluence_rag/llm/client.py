from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Sequence

import httpx

from ..core.errors import AnswerGenerationError
from ..db.vector_store import RetrievedSection

logger = logging.getLogger("rag.llm")

MAX_PASSAGE_CHARS = 500
FALLBACK_ANSWER = "Sorry, I couldn't find that information."

SYSTEM_PROMPT = (
    "You are a helpful assistant. "
    "Use only the provided context to answer. "
    "If the context does not contain the answer, politely say you could not "
    "find that information in the documents. "
    "Do not mention 'context' directly in your answer. "
    "Keep answers short, clear, and friendly. "
    "If the context contains an example or a format, return it directly."
)

_FENCE_RE = re.compile(r"```(?:plaintext)?\n?", re.IGNORECASE)


def build_context(passages: Sequence[RetrievedSection], max_chars: int = MAX_PASSAGE_CHARS) -> str:
    """Render passages as `## section` blocks, each truncated to `max_chars`."""
    blocks = []
    for passage in passages:
        text = passage.content
        if len(text) > max_chars:
            text = text[:max_chars] + "..."
        blocks.append(f"## {passage.section}\n{text}")
    return "\n\n".join(blocks)


def clean_answer(text: str) -> str:
    """Strip code fences the model likes to wrap answers in."""
    return _FENCE_RE.sub("", text).replace("```", "").strip()


class ChatClient:
    def __init__(
        self,
        base_url: str = "http://localhost:11434/api/chat",
        model: str = "phi3:mini",
        timeout: float = 120.0,
        temperature: float = 0.2,
        top_p: float = 0.95,
        max_tokens: int = 1024,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url
        self.model = model
        self.timeout = timeout
        self.temperature = temperature
        self.top_p = top_p
        self.max_tokens = max_tokens
        self._transport = transport

    async def chat(self, messages: List[Dict[str, Any]]) -> str:
        """
        Send a non-streaming chat request and return the assistant content.

        The provider returns:
            {"message": {"role": "assistant", "content": "..."}, "done": true}
        """
        payload = {
            "model": self.model,
            "messages": messages,
            "stream": False,
            "options": {
                "temperature": self.temperature,
                "top_p": self.top_p,
                "num_predict": self.max_tokens,
            },
        }

        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                resp = await client.post(self.base_url, json=payload)
                resp.raise_for_status()
            except httpx.HTTPError as exc:
                logger.error("Chat request failed: %s", exc)
                raise AnswerGenerationError(
                    f"Chat request failed: {type(exc).__name__}"
                ) from exc

        try:
            data = resp.json()
            content = data["message"]["content"]
        except (ValueError, KeyError, TypeError) as exc:
            raise AnswerGenerationError("Malformed chat response.") from exc

        if not isinstance(content, str):
            raise AnswerGenerationError("Chat response content is not text.")
        return content

    async def answer(self, query: str, passages: Sequence[RetrievedSection]) -> str:
        """Answer `query` from the retrieved passages only."""
        context = build_context(passages)
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {
                "role": "user",
                "content": f"<context>\n{context}\n</context>\n\nQuestion: {query}",
            },
        ]

        answer = clean_answer(await self.chat(messages))
        return answer or FALLBACK_ANSWER
