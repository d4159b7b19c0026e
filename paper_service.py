"""Paper search, explanation and Q&A on top of the resilient invoker."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Protocol

from backends import GenerativeBackend, build_backend
from credential_pool import CredentialPool
from decoder import decode, decode_text
from fan_out import FanOutAggregator
from filters import build_constraint
from invoker import ResilientInvoker
from models import Category, Credential, QueryRequest, Record, RecordSchema, SearchFilters
from settings import ServiceConfig

LOGGER = logging.getLogger(__name__)

MAX_HISTORY_TURNS = 6

JOURNAL_CATEGORY = Category(
    name="journal",
    focus="Focus strictly on established, Peer Reviewed journals (e.g., Nature, Science, IEEE, Springer).",
    status="Peer Reviewed",
)
PREPRINT_CATEGORY = Category(
    name="preprint",
    focus="Focus strictly on Preprints (e.g., arXiv, bioRxiv, medRxiv) or recent cutting-edge developments.",
    status="Preprint",
)
MIXED_CATEGORY = Category(
    name="mixed",
    focus=(
        "Search across both peer-reviewed journals (e.g., IEEE, ACM, Nature, Science, Springer) AND "
        "reputable preprint servers (e.g., arXiv, bioRxiv, medRxiv). Ensure a diverse selection if "
        "applicable, unless restricted by constraints."
    ),
    count=5,
)
DEFAULT_CATEGORIES: tuple[Category, ...] = (JOURNAL_CATEGORY, PREPRINT_CATEGORY)

_EXPLAIN_TEMPLATE = """You are an expert academic mentor. I want to read the paper "{title}" by {authors} ({year}).

First, search for this paper to understand its full content, abstract, and conclusions.
Then, write a "Kindle-style" simplified conceptual rewrite of the paper.

Guidelines:
1. Tone: Formal, calm, accessible, but scientifically accurate. Like a well-written Scientific American article.
2. Structure:
   * Title & Authors (Header)
   * The Big Picture: Why does this research exist? What problem is it solving?
   * Core Concepts: Explain the key ideas without heavy jargon.
   * Methodology: How did they do it? (Conceptual explanation, no complex math).
   * Key Findings: What did they discover?
   * Implications: Why does this matter?
3. Format: Use Markdown. Use ## for section headers. Use bold for emphasis. Break text into readable paragraphs.
"""

_ANSWER_TEMPLATE = """You are an academic reading assistant. The user is currently reading the paper:
"{title}" by {authors} ({year}).

Your goal is to answer the user's question based strictly on the likely content of this paper.
If the question is about general knowledge but relevant to the paper, explain it in the context of the paper.

Tone: Helpful, educational, clear.
{history}
User Question: {question}
"""


class PaperRef(Protocol):
    title: str
    authors: str
    year: str


def build_search_prompt(
    query: str,
    category: Category,
    filters: SearchFilters | None,
    schema: RecordSchema,
    count: int,
) -> str:
    sections = [
        f'Find {count} distinct, relevant and high-quality research papers on "{query}".',
        category.focus,
        build_constraint(filters),
        schema.describe(category.status),
    ]
    return "\n\n".join(section for section in sections if section)


def build_explain_prompt(entity: PaperRef) -> str:
    return _EXPLAIN_TEMPLATE.format(title=entity.title, authors=entity.authors, year=entity.year)


def build_answer_prompt(entity: PaperRef, question: str, history: Sequence[dict[str, str]] | None = None) -> str:
    turns = list(history or [])[-MAX_HISTORY_TURNS:]
    history_text = ""
    if turns:
        lines = ["", "Conversation so far:"]
        for turn in turns:
            speaker = "User" if turn.get("role") == "user" else "Assistant"
            lines.append(f"{speaker}: {turn.get('text', '').strip()}")
        history_text = "\n".join(lines) + "\n"
    return _ANSWER_TEMPLATE.format(
        title=entity.title,
        authors=entity.authors,
        year=entity.year,
        history=history_text,
        question=question.strip(),
    )


class PaperService:
    """Entry point for the rest of the application.

    Every call collects a fresh credential pool; nothing is cached between
    calls. Terminal errors are DecodeFailure, ExhaustionFailure and (for
    search) NoResultsFailure.
    """

    def __init__(
        self,
        config: ServiceConfig,
        backend: GenerativeBackend,
        pool_factory: Callable[[], CredentialPool] | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.config = config
        self.backend = backend
        self.pool_factory = pool_factory or (lambda: CredentialPool.from_config(config))
        self.sleep = sleep
        self.schema = RecordSchema(description_max_words=config.description_max_words)

    @classmethod
    def from_config(cls, config: ServiceConfig) -> PaperService:
        return cls(config, build_backend(config.provider, timeout_seconds=config.request_timeout_seconds))

    @classmethod
    def from_env(cls) -> PaperService:
        return cls.from_config(ServiceConfig.from_env())

    async def _credentials(self) -> tuple[Credential, ...]:
        pool = self.pool_factory()
        # Remote key lookup is blocking HTTP; keep it off the event loop.
        return tuple(await asyncio.to_thread(pool.collect))

    async def search(
        self,
        query: str,
        filters: SearchFilters | None = None,
        categories: Sequence[Category] = DEFAULT_CATEGORIES,
    ) -> list[Record]:
        LOGGER.info("Searching papers: query=%r categories=%s", query, [c.name for c in categories])
        credentials = await self._credentials()
        invoker = ResilientInvoker(self.backend, self.config.search_ladder, self.config, sleep=self.sleep)

        async def fetch(branch_query: str, category: Category) -> list[Record]:
            count = category.count or self.config.papers_per_category
            prompt = build_search_prompt(branch_query, category, filters, self.schema, count)
            raw = await invoker.execute(QueryRequest(prompt=prompt, schema=self.schema), credentials)
            return decode(raw, self.schema)

        return await FanOutAggregator(fetch).fan_out(query, categories)

    async def explain(self, entity: PaperRef) -> str:
        LOGGER.info("Generating explanation for: %s", entity.title)
        return await self._complete(build_explain_prompt(entity))

    async def answer(
        self,
        entity: PaperRef,
        question: str,
        history: Sequence[dict[str, str]] | None = None,
    ) -> str:
        LOGGER.info("Answering question about: %s", entity.title)
        return await self._complete(build_answer_prompt(entity, question, history))

    async def _complete(self, prompt: str) -> str:
        credentials = await self._credentials()
        invoker = ResilientInvoker(self.backend, self.config.explain_ladder, self.config, sleep=self.sleep)
        raw = await invoker.execute(QueryRequest(prompt=prompt), credentials)
        return decode_text(raw)


async def search(
    query: str,
    filters: SearchFilters | None = None,
    categories: Sequence[Category] = DEFAULT_CATEGORIES,
) -> list[Record]:
    """Fan-out paper search using configuration from the environment."""
    return await PaperService.from_env().search(query, filters, categories)


async def explain(entity: PaperRef) -> str:
    return await PaperService.from_env().explain(entity)


async def answer(entity: PaperRef, question: str, history: Sequence[dict[str, str]] | None = None) -> str:
    return await PaperService.from_env().answer(entity, question, history)
