"""
Unit tests for the bookfeed CLI.
"""

from pathlib import Path

from bookfeed.cli.run import _load_config, _parse_args, format_view, main
from bookfeed.feed.surface import FeedView
from bookfeed.feed.types import ConnectionState, FeedStatus
from bookfeed.types.types import BookSnapshot, PriceLevel


class TestArgs:
    """Tests for argument parsing and config resolution."""

    def test_defaults(self) -> None:
        args = _parse_args([])
        assert args.symbol is None
        assert args.config is None
        assert args.duration is None
        assert args.log_level == "INFO"

    def test_symbol_only(self) -> None:
        config = _load_config(_parse_args(["--symbol", "BTC"]))
        assert config.symbol == "BTC"

    def test_config_file_with_symbol_override(self, tmp_path: Path) -> None:
        path = tmp_path / "feed.toml"
        path.write_text('[feed]\nsymbol = "ETH"\ndepth = 5\n')
        config = _load_config(_parse_args(["--config", str(path), "--symbol", "SOL"]))
        assert config.symbol == "SOL"
        assert config.depth == 5


class TestMain:
    """Tests for exit codes."""

    def test_missing_config_returns_1(self, tmp_path: Path) -> None:
        assert main(["--config", str(tmp_path / "missing.toml")]) == 1

    def test_invalid_config_returns_1(self, tmp_path: Path) -> None:
        path = tmp_path / "feed.toml"
        path.write_text("[feed]\ndepth = -1\n")
        assert main(["--config", str(path)]) == 1


class TestFormatView:
    """Tests for the log line."""

    def test_empty_book(self) -> None:
        view = FeedView(BookSnapshot.empty("AVAX"), FeedStatus(ConnectionState.CONNECTING))
        assert format_view(view) == "AVAX [connecting] no book yet"

    def test_synthetic_book(self) -> None:
        snap = BookSnapshot(
            "AVAX",
            bids=(PriceLevel(29.499, 60.0),),
            asks=(PriceLevel(29.501, 70.0),),
            last_update=1,
            synthetic=True,
        )
        line = format_view(FeedView(snap, FeedStatus(ConnectionState.EXHAUSTED, synthetic=True)))
        assert line.startswith("AVAX [exhausted/synthetic] bid=29.499 ask=29.501")
        assert "levels=1/1" in line
