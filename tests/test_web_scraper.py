"""
Testes do WebScraper com httpx.MockTransport.
"""

import httpx
import pytest

from mcp_discovery.services.discovery_manager import RateLimiter
from mcp_discovery.services.scraper import ScrapingTarget, TargetPriority, TargetType, WebScraper
from mcp_discovery.services.scraper.web_scraper import parse_robots

from conftest import make_candidate

README = """# Filesystem MCP Server

## Installation

```bash
npm install @modelcontextprotocol/server-filesystem
```

## Configuration

```json
{"mcpServers": {"filesystem": {"command": "npx", "args": ["-y", "@modelcontextprotocol/server-filesystem"]}}}
```

Set FILESYSTEM_API_KEY before starting.

## Troubleshooting

Check directory permissions.
"""

HTML_PAGE = """<!doctype html>
<html lang="en"><head><title>postgres-mcp - npm</title>
<meta property="article:modified_time" content="2024-05-01"></head>
<body><div id="readme">
<h2>Install</h2><pre><code>npm install postgres-mcp</code></pre>
<h2>Configure</h2><p>Export POSTGRES_API_TOKEN with your token.</p>
</div><script>var x = 1;</script></body></html>
"""


def make_scraper(handler, **kwargs) -> WebScraper:
    kwargs.setdefault("retry_delay", 0.0)
    kwargs.setdefault("batch_delay", 0.0)
    kwargs.setdefault("rate_limiter", RateLimiter(requests_per_minute=100, name="scraper"))
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return WebScraper(client=client, **kwargs)


def no_robots(request: httpx.Request):
    if request.url.path == "/robots.txt":
        return httpx.Response(404)
    return None


async def test_scrapes_markdown_readme():
    def handler(request):
        return no_robots(request) or httpx.Response(
            200, text=README, headers={"content-type": "text/plain; charset=utf-8"}
        )

    scraper = make_scraper(handler)
    result = await scraper.scrape_url(ScrapingTarget(
        url="https://raw.githubusercontent.com/modelcontextprotocol/servers/main/src/filesystem/README.md",
        type=TargetType.GITHUB_README,
    ))

    assert result.success
    assert result.title == "Filesystem MCP Server"
    assert result.content_type == "github"
    assert "npm install @modelcontextprotocol/server-filesystem" in result.extracted.installation_commands
    assert result.extracted.configuration_examples
    assert "FILESYSTEM_API_KEY" in result.extracted.required_credentials
    assert result.extracted.troubleshooting == ["Check directory permissions."]


async def test_scrapes_html_page():
    def handler(request):
        return no_robots(request) or httpx.Response(
            200, text=HTML_PAGE, headers={"content-type": "text/html"}
        )

    scraper = make_scraper(handler)
    result = await scraper.scrape_url(ScrapingTarget(
        url="https://www.npmjs.com/package/postgres-mcp", type=TargetType.NPM_DOCS
    ))

    assert result.success
    assert result.title == "postgres-mcp - npm"
    assert result.content_type == "npm"
    assert "var x" not in result.content
    assert "npm install postgres-mcp" in result.extracted.installation_commands
    assert "POSTGRES_API_TOKEN" in result.extracted.required_credentials
    assert result.metadata["last_modified"] == "2024-05-01"
    assert result.metadata["language"] == "en"


async def test_robots_disallow_blocks_fetch():
    fetched = []

    def handler(request):
        if request.url.path == "/robots.txt":
            return httpx.Response(200, text="User-agent: *\nDisallow: /private\n")
        fetched.append(request.url.path)
        return httpx.Response(200, text="ok")

    scraper = make_scraper(handler)
    blocked = await scraper.scrape_url("https://docs.example.com/private/setup")
    allowed = await scraper.scrape_url("https://docs.example.com/public/setup")

    assert not blocked.success
    assert "robots.txt" in blocked.error
    assert allowed.success
    assert fetched == ["/public/setup"]
    assert scraper.get_stats()["robots_blocked"] == 1
    assert scraper.get_stats()["robots_cache_size"] == 1


async def test_unreachable_robots_is_fail_open():
    def handler(request):
        if request.url.path == "/robots.txt":
            raise httpx.ConnectError("down", request=request)
        return httpx.Response(200, text="# Docs\nnpm install x-mcp")

    result = await make_scraper(handler).scrape_url("https://docs.example.com/guide")
    assert result.success


async def test_robots_check_can_be_disabled():
    def handler(request):
        if request.url.path == "/robots.txt":
            return httpx.Response(200, text="User-agent: *\nDisallow: /\n")
        return httpx.Response(200, text="# Docs")

    result = await make_scraper(handler, respect_robots_txt=False).scrape_url("https://docs.example.com/guide")
    assert result.success


@pytest.mark.parametrize("status", [403, 404])
async def test_client_errors_are_not_retried(status):
    calls = []

    def handler(request):
        if request.url.path == "/robots.txt":
            return httpx.Response(404)
        calls.append(request.url.path)
        return httpx.Response(status)

    result = await make_scraper(handler, max_retries=3).scrape_url("https://docs.example.com/page")

    assert not result.success
    assert result.status_code == status
    assert len(calls) == 1


async def test_server_errors_are_retried_with_backoff():
    calls = []

    def handler(request):
        if request.url.path == "/robots.txt":
            return httpx.Response(404)
        calls.append(request.url.path)
        if len(calls) < 3:
            return httpx.Response(503)
        return httpx.Response(200, text="# Recovered")

    result = await make_scraper(handler, max_retries=3).scrape_url("https://docs.example.com/page")

    assert result.success
    assert result.title == "Recovered"
    assert len(calls) == 3


async def test_timeout_is_terminal():
    calls = []

    def handler(request):
        if request.url.path == "/robots.txt":
            return httpx.Response(404)
        calls.append(request.url.path)
        raise httpx.ReadTimeout("lento", request=request)

    result = await make_scraper(handler, max_retries=3).scrape_url("https://docs.example.com/page")

    assert not result.success
    assert "Timeout" in result.error
    assert len(calls) == 1


async def test_body_size_is_capped():
    def handler(request):
        return no_robots(request) or httpx.Response(200, content=b"x" * 2048)

    result = await make_scraper(handler, max_content_length=1024).scrape_url("https://docs.example.com/big")

    assert not result.success
    assert "excede" in result.error


async def test_batch_isolates_failures_and_orders_by_priority():
    def handler(request):
        if request.url.path == "/robots.txt":
            return httpx.Response(404)
        if request.url.path.startswith("/broken"):
            return httpx.Response(404)
        return httpx.Response(200, text=f"# {request.url.path}")

    scraper = make_scraper(handler, rate_limit_per_minute=4)
    targets = [
        ScrapingTarget("https://docs.example.com/low", priority=TargetPriority.LOW),
        ScrapingTarget("https://docs.example.com/broken-1", priority=TargetPriority.MEDIUM),
        ScrapingTarget("https://docs.example.com/high", priority=TargetPriority.HIGH),
        ScrapingTarget("https://docs.example.com/broken-2", priority=TargetPriority.MEDIUM),
        ScrapingTarget("https://docs.example.com/medium", priority=TargetPriority.MEDIUM),
    ]

    results = await scraper.scrape_multiple(targets)

    assert len(results) == 5
    assert sum(1 for r in results if r.success) == 3
    assert results[0].url.endswith("/high")
    assert results[-1].url.endswith("/low")


def test_generate_targets_for_official_candidate():
    scraper = WebScraper()
    targets = scraper.generate_targets(make_candidate())

    assert [t.type for t in targets] == [TargetType.GITHUB_README, TargetType.NPM_DOCS]
    assert targets[0].url == (
        "https://raw.githubusercontent.com/modelcontextprotocol/servers/main/src/filesystem/README.md"
    )
    assert targets[0].priority == TargetPriority.HIGH
    assert targets[1].url == "https://www.npmjs.com/package/@modelcontextprotocol/server-filesystem"


def test_generate_targets_includes_separate_docs():
    candidate = make_candidate(
        repository_url="https://gitlab.com/acme/tool-mcp",
        npm_package=None,
        documentation_url="https://docs.acme.dev/tool-mcp",
    )
    targets = WebScraper().generate_targets(candidate)
    assert [(t.type, t.priority) for t in targets] == [(TargetType.DOCUMENTATION, TargetPriority.MEDIUM)]


@pytest.mark.parametrize("url,expected", [
    ("https://github.com/acme/tool-mcp", "https://raw.githubusercontent.com/acme/tool-mcp/main/README.md"),
    ("https://github.com/acme/tool-mcp.git", "https://raw.githubusercontent.com/acme/tool-mcp/main/README.md"),
    ("https://github.com/acme/mono/tree/dev/packages/a",
     "https://raw.githubusercontent.com/acme/mono/dev/packages/a/README.md"),
    ("https://gitlab.com/acme/tool", None),
    ("https://github.com/acme", None),
])
def test_github_readme_url(url, expected):
    assert WebScraper.github_readme_url(url) == expected


def test_parse_robots_groups():
    content = (
        "User-agent: googlebot\nDisallow: /google-only\n\n"
        "User-agent: *\nDisallow: /private\nDisallow:\n"
    )
    assert parse_robots(content, "MCP-Discovery/1.0") == ["/private"]


async def test_concurrent_scrapes_share_one_robots_fetch():
    robots_calls = []

    def handler(request):
        if request.url.path == "/robots.txt":
            robots_calls.append(request.url.host)
            return httpx.Response(200, text="User-agent: *\nDisallow: /private\n")
        return httpx.Response(200, text=README)

    scraper = make_scraper(handler)
    targets = [
        ScrapingTarget(url=f"https://docs.example.com/page-{i}", type=TargetType.DOCUMENTATION)
        for i in range(3)
    ] + [ScrapingTarget(url="https://docs.example.com/private/x", type=TargetType.DOCUMENTATION)]

    results = await scraper.scrape_multiple(targets)

    assert robots_calls == ["docs.example.com"]
    assert [r.success for r in results] == [True, True, True, False]
    assert scraper.get_stats()["robots_blocked"] == 1


async def test_bogus_charset_falls_back_to_utf8():
    def handler(request):
        return no_robots(request) or httpx.Response(
            200,
            content=README.encode("utf-8"),
            headers={"content-type": "text/plain; charset=not-a-real-charset"},
        )

    result = await make_scraper(handler).scrape_url("https://raw.githubusercontent.com/a/b/main/README.md")

    assert result.success
    assert "npm install @modelcontextprotocol/server-filesystem" in result.content


@pytest.mark.parametrize("error", [httpx.InvalidURL("Invalid port: 'abc'"), LookupError("unknown encoding: x")])
async def test_unexpected_fetch_errors_become_failed_content(monkeypatch, error):
    scraper = make_scraper(no_robots, respect_robots_txt=False)

    async def broken(url):
        raise error

    monkeypatch.setattr(scraper, "_fetch_with_retry", broken)
    result = await scraper.scrape_url("https://example.com:abc/readme")

    assert not result.success
    assert type(error).__name__ in result.error
    assert scraper.get_stats()["failed"] == 1


async def test_invalid_robots_url_is_fail_open(monkeypatch):
    scraper = make_scraper(lambda request: httpx.Response(200, text=README))

    async def invalid_get(*args, **kwargs):
        raise httpx.InvalidURL("Invalid host")

    monkeypatch.setattr(scraper._get_client(), "get", invalid_get)

    assert await scraper._load_robots("https://bad host") == []
