from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
import logging
from typing import Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    success: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)


class BatchRunner:
    """Run one async call per item with a fixed concurrency limit.

    A limit of 1 processes items strictly one after another in input order.
    Every item is attempted; an exception or a falsy return marks only that
    item as failed.
    """

    def __init__(self, *, concurrency: int = 1) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.concurrency = concurrency

    async def run(self, items: list[str], call: Callable[[str], Awaitable[bool]]) -> BatchResult:
        outcomes: list[tuple[bool, str | None]] = [(False, None)] * len(items)
        semaphore = asyncio.Semaphore(self.concurrency)

        async def _run_one(index: int, item: str) -> None:
            async with semaphore:
                try:
                    ok = bool(await call(item))
                    outcomes[index] = (ok, None if ok else "operation reported failure")
                except Exception as exc:  # noqa: BLE001
                    logger.warning("batch.item_failed", extra={"item": item, "error": str(exc)})
                    outcomes[index] = (False, str(exc))

        if self.concurrency == 1:
            for index, item in enumerate(items):
                await _run_one(index, item)
        else:
            await asyncio.gather(*(_run_one(index, item) for index, item in enumerate(items)))

        result = BatchResult()
        for item, (ok, error) in zip(items, outcomes):
            if ok:
                result.success.append(item)
            else:
                result.failed.append(item)
                if error:
                    result.errors[item] = error
        return result
