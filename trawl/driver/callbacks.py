"""Callback functions for the coordinator's on_result parameter.

Each factory returns an async callback receiving an accepted
ExtractionResult, so records can be persisted incrementally instead of
buffering the whole run in memory.

Example::

    from trawl.driver.callbacks import save_to_jsonl_file
    from trawl.driver.traversal import run_extraction

    with open("products.jsonl", "w") as f:
        summary = await run_extraction(
            seeds, fields, budget,
            page_source=source,
            link_strategy=links,
            on_result=save_to_jsonl_file(f),
        )
"""

import json
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TextIO

from trawl.data_types import ExtractionResult

ResultCallback = Callable[[ExtractionResult], Awaitable[None]]


def _write_record(result: ExtractionResult, file_handle: TextIO) -> None:
    json.dump(result.record(), file_handle, ensure_ascii=False)
    file_handle.write("\n")
    file_handle.flush()


def save_to_jsonl_file(file_handle: TextIO) -> ResultCallback:
    """Create a callback that writes each accepted record as a JSON line.

    Args:
        file_handle: An open file handle to write JSON lines to.
            The caller is responsible for opening and closing the file.

    Returns:
        An async callback for the on_result parameter.
    """

    async def callback(result: ExtractionResult) -> None:
        _write_record(result, file_handle)

    return callback


def save_to_jsonl_path(file_path: Path | str) -> ResultCallback:
    """Create a callback that appends each accepted record to a JSONL file.

    Warning:
        This opens the file in append mode ("a"). If you want to overwrite,
        delete the file first or use save_to_jsonl_file() with mode="w".

    Args:
        file_path: Path to the JSONL file to append to.

    Returns:
        An async callback for the on_result parameter.
    """
    path = Path(file_path)

    async def callback(result: ExtractionResult) -> None:
        with path.open("a", encoding="utf-8") as file_handle:
            _write_record(result, file_handle)

    return callback


def count_results(counter: list[int] | None = None) -> ResultCallback:
    """Create a callback that counts accepted results.

    Args:
        counter: Optional list to store the count in, at index 0.

    Example::

        count = [0]
        await coordinator.run(seeds, budget)  # with on_result=count_results(count)
        print(f"Accepted {count[0]} items")
    """
    if counter is None:
        counter = [0]

    async def callback(result: ExtractionResult) -> None:
        counter[0] += 1

    return callback


def combine_callbacks(*callbacks: ResultCallback) -> ResultCallback:
    """Combine multiple callbacks into one, invoked in order."""

    async def callback(result: ExtractionResult) -> None:
        for cb in callbacks:
            await cb(result)

    return callback
