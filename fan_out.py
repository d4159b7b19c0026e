"""Concurrent category fan-out with isolated branch failures."""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from collections.abc import Awaitable, Callable, Sequence

from errors import NoResultsFailure, PaperLookupError
from models import BranchErr, BranchOk, BranchResult, Category, Record

LOGGER = logging.getLogger(__name__)

BranchFetch = Callable[[str, Category], Awaitable[list[Record]]]


def merge(results: Sequence[BranchResult], stamp: int) -> list[Record]:
    """Merge settled branches into one deduplicated, identified record list.

    Successful branches are concatenated in the order given (category
    declaration order). The first record seen for a dedup key wins. Records
    without an id get ``paper-<stamp>-<n>``. Failed branches are dropped.
    """
    seen: set[str] = set()
    merged: list[Record] = []

    for result in results:
        if isinstance(result, BranchErr):
            continue
        for record in result.records:
            key = record.dedup_key
            if key in seen:
                continue
            seen.add(key)
            merged.append(record)

    return [
        record if record.paper_id else dataclasses.replace(record, paper_id=f"paper-{stamp}-{index}")
        for index, record in enumerate(merged)
    ]


class FanOutAggregator:
    """Run one ``fetch`` per category concurrently and merge what succeeds."""

    def __init__(self, fetch: BranchFetch, clock: Callable[[], float] = time.time) -> None:
        self.fetch = fetch
        self.clock = clock

    async def fan_out(self, query: str, categories: Sequence[Category]) -> list[Record]:
        results = await self.settle(query, categories)

        for result in results:
            if isinstance(result, BranchErr):
                LOGGER.warning("Search branch %s failed after retries: %s", result.category.name, result.cause)

        if not any(isinstance(result, BranchOk) and result.records for result in results):
            errors = {result.category.name: result.cause for result in results if isinstance(result, BranchErr)}
            raise NoResultsFailure(errors)

        stamp = int(self.clock() * 1000)
        records = merge(results, stamp)
        LOGGER.info(
            "Fan-out for %r: branches=%s ok=%s merged=%s",
            query,
            len(results),
            sum(isinstance(result, BranchOk) for result in results),
            len(records),
        )
        return records

    async def settle(self, query: str, categories: Sequence[Category]) -> list[BranchResult]:
        """Run every branch to completion; results follow ``categories`` order."""
        tasks = [asyncio.create_task(self._branch(query, category)) for category in categories]
        return list(await asyncio.gather(*tasks))

    async def _branch(self, query: str, category: Category) -> BranchResult:
        try:
            records = await self.fetch(query, category)
        except PaperLookupError as exc:
            return BranchErr(category=category, cause=exc)
        except Exception as exc:
            LOGGER.exception("Search branch %s raised unexpectedly", category.name)
            return BranchErr(category=category, cause=exc)
        return BranchOk(category=category, records=list(records))
