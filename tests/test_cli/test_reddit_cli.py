"""Tests for the reddit-feed command line."""

import httpx
import pytest
import respx
from click.testing import CliRunner

from reddit_feed.cli import main


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def cli_env(monkeypatch):
    for name in (
        "REDDIT_ACCESS_TOKEN",
        "REDDIT_REFRESH_TOKEN",
        "TOKEN_BROKER_URL",
        "DATABASE_URL",
        "REDDIT_CLIENT_ID",
        "REDDIT_CLIENT_SECRET",
        "REDDIT_REDIRECT_URI",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("SORT_VARIANTS", "hot,top:day")
    return monkeypatch


class TestFeedCommand:
    """Tests for `reddit-feed feed`."""

    @respx.mock
    def test_prints_feed(self, runner, cli_env, make_listing, image_post):
        """Should print resolved posts per source."""
        respx.get("https://oauth.reddit.com/r/pics/hot").mock(
            return_value=httpx.Response(200, json=make_listing(image_post("abc123", title="A cat")))
        )
        respx.get("https://oauth.reddit.com/r/pics/top").mock(
            return_value=httpx.Response(200, json=make_listing())
        )

        result = runner.invoke(main, ["feed", "r/pics", "--access-token", "tok", "--seed", "1"])

        assert result.exit_code == 0, result.output
        assert "r/pics: 1 posts" in result.output
        assert "abc123" in result.output
        assert "https://i.redd.it/abc123.jpg" in result.output
        request = respx.calls[0].request
        assert request.headers["Authorization"] == "Bearer tok"

    @respx.mock
    def test_all_sources_failed(self, runner, cli_env):
        """Should exit non-zero when no source loads."""
        respx.get("https://oauth.reddit.com/r/gone/hot").mock(return_value=httpx.Response(404))
        respx.get("https://oauth.reddit.com/r/gone/top").mock(return_value=httpx.Response(404))

        result = runner.invoke(main, ["feed", "gone", "--access-token", "tok"])

        assert result.exit_code == 1
        assert "Subreddit r/gone not found." in result.output

    def test_requires_token_source(self, runner, cli_env):
        """Should refuse to run without any way to get a token."""
        result = runner.invoke(main, ["feed", "pics"])

        assert result.exit_code == 2
        assert "--access-token" in result.output

    def test_requires_sources(self, runner, cli_env):
        """Should require at least one source."""
        result = runner.invoke(main, ["feed", "--access-token", "tok"])

        assert result.exit_code == 2


class TestConnectUrl:
    """Tests for `reddit-feed connect-url`."""

    def test_prints_authorize_url(self, runner, cli_env):
        """Should print the authorize URL with the given state."""
        cli_env.setenv("REDDIT_CLIENT_ID", "cid")
        cli_env.setenv("REDDIT_CLIENT_SECRET", "secret")
        cli_env.setenv("REDDIT_REDIRECT_URI", "http://localhost:5173/auth/callback")

        result = runner.invoke(main, ["connect-url", "--user-id", "u1", "--state", "abc"])

        assert result.exit_code == 0, result.output
        url = result.output.strip().splitlines()[-1]
        assert url.startswith("https://www.reddit.com/api/v1/authorize?")
        assert "client_id=cid" in url
        assert "state=abc" in url
        assert "duration=permanent" in url

    def test_unconfigured(self, runner, cli_env):
        """Should fail cleanly without client credentials."""
        result = runner.invoke(main, ["connect-url", "--user-id", "u1"])

        assert result.exit_code == 1
        assert "TOKEN_BROKER_URL" in result.output
