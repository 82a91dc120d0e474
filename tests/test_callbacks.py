"""Tests for on_result callbacks."""

import json
from pathlib import Path

import pytest

from tests.conftest import LISTING_URL
from tests.utils import PRODUCT_LINKS, shop_fields
from trawl.common.lxml_page import StaticPageSource
from trawl.data_types import ABSENT, ExtractionResult, TraversalBudget
from trawl.driver.callbacks import (
    combine_callbacks,
    count_results,
    save_to_jsonl_file,
    save_to_jsonl_path,
)
from trawl.driver.traversal import run_extraction


def make_result(sku: str) -> ExtractionResult:
    return ExtractionResult(
        url=f"http://shop.example/products/{sku}",
        values={"title": f"Item {sku}", "price": 1.5, "images": ("a", "b"),
                "original_price": ABSENT},
        required=("title",),
    )


class TestJsonLines:
    """Tests for the JSON lines writers."""

    @pytest.mark.asyncio
    async def test_save_to_jsonl_file(self, tmp_path: Path) -> None:
        """Each accepted record shall be written as one JSON object per line."""
        output = tmp_path / "out.jsonl"
        with output.open("w") as f:
            callback = save_to_jsonl_file(f)
            await callback(make_result("A"))
            await callback(make_result("B"))

        lines = output.read_text().splitlines()
        assert len(lines) == 2
        first = json.loads(lines[0])
        assert first["title"] == "Item A"
        assert first["original_price"] is None
        assert first["images"] == ["a", "b"]
        assert first["url"] == "http://shop.example/products/A"

    @pytest.mark.asyncio
    async def test_save_to_jsonl_path_appends(self, tmp_path: Path) -> None:
        output = tmp_path / "out.jsonl"
        output.write_text('{"existing": true}\n')

        await save_to_jsonl_path(output)(make_result("C"))

        lines = output.read_text().splitlines()
        assert json.loads(lines[0]) == {"existing": True}
        assert json.loads(lines[1])["title"] == "Item C"

    @pytest.mark.asyncio
    async def test_streams_during_run(
        self, shop_source: StaticPageSource, tmp_path: Path
    ) -> None:
        """A run shall write one line per accepted record."""
        output = tmp_path / "products.jsonl"
        counter = [0]
        with output.open("w") as f:
            summary = await run_extraction(
                [LISTING_URL],
                shop_fields(),
                TraversalBudget(),
                page_source=shop_source,
                link_strategy=PRODUCT_LINKS,
                on_result=combine_callbacks(
                    save_to_jsonl_file(f), count_results(counter)
                ),
            )

        records = [json.loads(line) for line in output.read_text().splitlines()]
        assert len(records) == summary.succeeded == counter[0] == 5
        assert all(record["title"] for record in records)


class TestCounting:
    @pytest.mark.asyncio
    async def test_count_results(self) -> None:
        counter = [0]
        callback = count_results(counter)
        for sku in "XYZ":
            await callback(make_result(sku))
        assert counter[0] == 3
