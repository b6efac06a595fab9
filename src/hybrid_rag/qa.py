from __future__ import annotations

from openai import OpenAI, OpenAIError

from .errors import CollaboratorError
from .schema import Chunk

SYSTEM_PROMPT = "你是一个 RAG 助手，只能根据上下文回答问题；如果上下文不足以回答，请说‘我不知道’。"
FALLBACK_ANSWER = "我不知道（未检索到足够相关的上下文）"


def build_context(chunks: list[Chunk]) -> str:
    return "\n\n".join(f"【{idx + 1} {chunk.key}】\n{chunk.content}" for idx, chunk in enumerate(chunks))


def generate_answer(system_prompt: str, context: str, question: str, client: OpenAI, model: str) -> str:
    """Ask the chat model to answer `question` from `context` only.

    Raises:
        CollaboratorError: If the chat completion request fails.
    """
    try:
        response = client.chat.completions.create(
            model=model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": f"上下文：\n{context}\n\n问题：\n{question}"},
            ],
        )
    except OpenAIError as exc:
        raise CollaboratorError(f"answer generation failed: {exc}") from exc
    return response.choices[0].message.content or ""
