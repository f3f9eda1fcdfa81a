"""Prompt assembler: ranked passages + trimmed history -> chat messages.

Pipeline:
  1. Apply the passage token budget: keep ranked passages best-first until
     the next one would overflow.
  2. Format the kept passages as numbered sources with path, line range
     and language.
  3. Build the message list: system prompt (instructions + code context),
     memory summary and history, then the current question.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from codemind.db.models import RetrievedPassage
from codemind.ingest.base import estimate_tokens
from codemind.rag.memory import MemoryContext


@dataclass
class AssemblerConfig:
    token_budget: int = 6_000          # max estimated tokens of code context
    project_name: str = ""


@dataclass
class AssembledPrompt:
    system_prompt: str
    messages: list[dict[str, str]] = field(default_factory=list)
    passages: list[RetrievedPassage] = field(default_factory=list)
    context_tokens: int = 0
    history_tokens: int = 0


_SYSTEM_TEMPLATE = """\
You are an AI assistant answering questions about the {project} codebase.

Use the following code context to answer accurately:

{context}

Guidelines:
- When referencing code, mention the file path and line numbers.
- Consider the conversation history for continuity.
- If the context does not contain the answer, say so clearly."""

_NO_CONTEXT = "(no relevant code was found for this question)"


def assemble(
    question: str,
    passages: list[RetrievedPassage],
    memory: MemoryContext | None,
    config: AssemblerConfig | None = None,
) -> AssembledPrompt:
    """Build the chat messages handed to the language model.

    Args:
        question: The current user question.
        passages: Ranked passages from the retriever, best first.
        memory: Trimmed history from the memory manager (may be empty).
        config: Assembler configuration.
    """
    config = config or AssemblerConfig()
    memory = memory or MemoryContext()

    selected, context_tokens = _apply_token_budget(passages, config.token_budget)
    context = format_passages(selected) if selected else _NO_CONTEXT
    system_prompt = _SYSTEM_TEMPLATE.format(
        project=f'"{config.project_name}"' if config.project_name else "current",
        context=context,
    )

    messages = [{"role": "system", "content": system_prompt}]
    messages.extend(memory.as_chat_messages())
    messages.append({"role": "user", "content": question})

    return AssembledPrompt(
        system_prompt=system_prompt,
        messages=messages,
        passages=selected,
        context_tokens=context_tokens,
        history_tokens=memory.total_tokens,
    )


def format_passages(passages: list[RetrievedPassage]) -> str:
    blocks = []
    for i, rp in enumerate(passages, start=1):
        p = rp.passage
        blocks.append(
            f"Source {i}:\n"
            f"File: {p.path} (lines {p.start_line}-{p.end_line})\n"
            f"Language: {p.language}\n"
            f"Code:\n{p.content}"
        )
    return "\n\n---\n\n".join(blocks)


# ------------------------------------------------------------------
# Token budget
# ------------------------------------------------------------------


def _apply_token_budget(
    passages: list[RetrievedPassage], budget: int
) -> tuple[list[RetrievedPassage], int]:
    """Select passages that fit within *budget* tokens. Returns (selected, total_tokens)."""
    selected: list[RetrievedPassage] = []
    total = 0
    for rp in passages:
        tokens = rp.passage.token_count or estimate_tokens(rp.passage.content)
        if total + tokens > budget:
            break
        selected.append(rp)
        total += tokens
    return selected, total
