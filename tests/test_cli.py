import argparse
from pathlib import Path

import pytest

from conftest import make_settings
from scripts.aggregate import build_parser, run


def test_parser_reads_coordinates() -> None:
    args = build_parser().parse_args(
        ["official", "--tags", "flood,storm", "--coords", "29.76,-95.37", "--refresh"]
    )
    assert args.pipeline == "official"
    assert args.coords == (29.76, -95.37)
    assert args.refresh is True
    assert args.sources is None


def test_parser_rejects_bad_coordinates() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args(["official", "--coords", "29.76"])


@pytest.mark.asyncio
async def test_run_with_mock_source(tmp_path: Path) -> None:
    args = build_parser().parse_args(
        ["social", "--tags", "flood", "--location", "Houston, TX", "--sources", "mock",
         "--max-results", "5"]
    )
    assert isinstance(args, argparse.Namespace)

    payload = await run(args, make_settings(tmp_path))

    assert payload["synthetic"] is True
    assert len(payload["records"]) == 5
    assert {r["platform"] for r in payload["records"]} == {"mock"}
