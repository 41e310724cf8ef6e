"""Tests for lrn_crawl.cli module."""

from __future__ import annotations

import json
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from lrn_crawl import cli
from lrn_crawl.errors import InvalidURLError, ManifestFetchError
from lrn_crawl.models import CrawlMetadata, CrawlReport

URL = "https://docs.example.com/llms.txt"


def _report() -> CrawlReport:
    metadata = CrawlMetadata(origin="https://docs.example.com", crawled_at="2024-01-01T00:00:00.000Z")
    return CrawlReport(
        metadata=metadata,
        output_dir=Path("/tmp/out"),
        saved=["https://docs.example.com/guide"],
        skipped=[("https://docs.example.com/api", "unchanged")],
    )


@pytest.fixture(autouse=True)
def _no_env_file():
    with patch.object(cli.config, "load_config", return_value=None):
        yield


@pytest.fixture
def fake_crawl():
    with patch.object(cli, "crawl_async", new=AsyncMock(return_value=_report())) as mock:
        yield mock


class TestParseArgs:
    def test_defaults(self):
        args = cli._parse_args([URL])
        assert args.url == URL
        assert args.depth == 0
        assert args.rate is None
        assert args.include == []
        assert args.dry_run is False
        assert args.max_duration is None
        assert args.json_output is False

    def test_all_options(self):
        args = cli._parse_args(
            [
                URL,
                "--depth", "2",
                "--rate", "0.5",
                "-o", "/tmp/out",
                "--include", "/guide/",
                "--include", "/api/**",
                "--exclude", "/blog/",
                "--dry-run",
                "--max-time", "60",
                "--json",
                "-q",
            ]
        )
        options = cli._options_from_args(args)
        assert options.depth == 2
        assert options.rate == 0.5
        assert options.output == "/tmp/out"
        assert options.include == ("/guide/", "/api/**")
        assert options.exclude == ("/blog/",)
        assert options.dry_run is True
        assert options.max_duration == 60.0
        assert options.quiet is True

    @pytest.mark.parametrize(
        "argv",
        [
            [URL, "--rate", "0"],
            [URL, "--rate", "fast"],
            [URL, "--depth", "-1"],
            [URL, "--max-time", "0"],
            [URL, "-v", "-q"],
            [],
        ],
    )
    def test_rejected_arguments(self, argv):
        with pytest.raises(SystemExit) as excinfo:
            cli._parse_args(argv)
        assert excinfo.value.code == 2

    def test_rate_defaults_from_environment(self, monkeypatch):
        monkeypatch.setenv("LRN_CRAWL_RATE", "0.25")
        options = cli._options_from_args(cli._parse_args([URL]))
        assert options.rate == 0.25


class TestMain:
    def test_success(self, fake_crawl):
        assert cli.main([URL, "-q"]) == 0
        options = fake_crawl.await_args.args[0]
        assert options.url == URL
        assert options.quiet is True
        assert fake_crawl.await_args.kwargs["progress"] is None

    def test_json_report(self, fake_crawl, capsys):
        assert cli.main([URL, "--json"]) == 0

        data = json.loads(capsys.readouterr().out)
        assert data["saved"] == ["https://docs.example.com/guide"]
        assert data["skipped"] == [{"url": "https://docs.example.com/api", "reason": "unchanged"}]
        assert data["source"] == "llms-txt"
        progress = fake_crawl.await_args.kwargs["progress"]
        assert progress.quiet is True

    def test_invalid_input_exit_code(self, fake_crawl):
        fake_crawl.side_effect = InvalidURLError("Invalid URL: nope", url="nope")
        assert cli.main(["nope"]) == 1

    def test_manifest_failure_exit_code(self, fake_crawl):
        fake_crawl.side_effect = ManifestFetchError("Failed to fetch llms.txt: HTTP 404", url=URL)
        assert cli.main([URL]) == 4

    def test_unexpected_error(self, fake_crawl):
        fake_crawl.side_effect = RuntimeError("boom")
        assert cli.main([URL]) == 1

    def test_keyboard_interrupt(self):
        def _interrupt(coro):
            coro.close()
            raise KeyboardInterrupt

        with patch.object(cli.asyncio, "run", side_effect=_interrupt):
            assert cli.main([URL]) == 130

    def test_loads_env_file(self, fake_crawl):
        cli.main([URL])
        cli.config.load_config.assert_called_once_with()
