"""
Testes do SetupInstructionParser.
"""

import pytest

from mcp_discovery.services.scraper import ExtractedData, ScrapedContent, SetupInstructionParser
from mcp_discovery.services.scraper.setup_instruction_parser import (
    CONFIDENCE_WEIGHTS,
    detect_language,
    parse_json_config,
)

FULL_DOC = """# Weather MCP

Requires Node.js 18 or newer.
Install version 1.2.3 with:

```bash
npm install weather-mcp
```

```json
{"mcpServers": {"weather": {"command": "npx", "args": ["weather-mcp"]}}}
```

Required fields: command, args
Optional fields: env

Set WEATHER_API_KEY (optional for the free tier).
token: Personal token from the dashboard

1. Install the package
2. Add the config to your client

Test command: `npx weather-mcp --check`
Expected output: weather server ready

**Issue**: Connection refused **Solution**: Check the port
Q: Does it need a key? A: Only for premium data
"""


def scraped(content: str, **extracted) -> ScrapedContent:
    return ScrapedContent(
        url="https://github.com/acme/weather-mcp",
        title="Weather MCP",
        content=content,
        content_type="github",
        extracted=ExtractedData(**extracted),
        success=True,
    )


def test_full_document_is_structured():
    result = SetupInstructionParser().parse(scraped(FULL_DOC))

    assert result.installation["commands"] == ["npm install weather-mcp"]
    assert result.installation["package_manager"] == "npm"
    assert result.installation["version"] == "1.2.3"
    assert "Node.js 18 or newer." in result.installation["requirements"]

    assert result.configuration["schema"] == {"mcpServers": {"weather": {"command": "npx", "args": ["weather-mcp"]}}}
    assert result.configuration["required_fields"] == ["command", "args"]
    assert result.configuration["optional_fields"] == ["env"]

    credentials = {c["key"]: c for c in result.credentials}
    assert credentials["WEATHER_API_KEY"]["env_var"] == "WEATHER_API_KEY"
    assert credentials["WEATHER_API_KEY"]["optional"] is True
    assert credentials["token"]["description"] == "Personal token from the dashboard"

    assert {e["language"] for e in result.examples} == {"bash", "json"}
    assert result.verification["steps"] == ["Install the package", "Add the config to your client"]
    assert result.verification["test_commands"] == ["npx weather-mcp --check"]
    assert result.verification["expected_outputs"] == ["weather server ready"]
    assert result.troubleshooting["common_issues"] == [{"issue": "Connection refused", "solution": "Check the port"}]
    assert result.troubleshooting["faq"] == [{"question": "Does it need a key?", "answer": "Only for premium data"}]

    assert result.confidence == pytest.approx(1.0)
    assert result.metadata["source"] == "https://github.com/acme/weather-mcp"
    assert result.metadata["content_types"] == ["github"]


def test_confidence_is_weighted_by_section():
    only_install = SetupInstructionParser().parse(scraped("Run pip install weather-mcp to get started."))
    assert only_install.confidence == pytest.approx(CONFIDENCE_WEIGHTS["installation"])
    assert only_install.installation["package_manager"] == "pip"

    empty = SetupInstructionParser().parse(scraped("Nothing useful here."))
    assert empty.confidence == 0.0


def test_extracted_data_from_scraper_is_merged():
    result = SetupInstructionParser().parse(scraped(
        "",
        installation_commands=["yarn add weather-mcp"],
        required_credentials=["WEATHER_TOKEN"],
        troubleshooting=["Restart the client"],
    ))

    assert result.installation["commands"] == ["yarn add weather-mcp"]
    assert result.installation["package_manager"] == "yarn"
    assert result.credentials[0]["env_var"] == "WEATHER_TOKEN"
    assert result.troubleshooting["common_issues"] == [{"issue": "Restart the client", "solution": "Ver documentação"}]


def test_invalid_json_config_is_repaired():
    content = "```json\n{'command': 'npx', 'args': ['weather-mcp'],}\n```"
    result = SetupInstructionParser().parse(scraped(content))

    assert result.configuration["schema"] == {"command": "npx", "args": ["weather-mcp"]}
    assert result.configuration["template"] is not None


def test_toggles_disable_examples_and_credentials():
    parser = SetupInstructionParser(enable_code_extraction=False, enable_credential_detection=False)
    result = parser.parse(scraped(FULL_DOC))

    assert result.examples == []
    assert result.credentials == []
    assert result.confidence == pytest.approx(0.30 + 0.25 + 0.10)


def test_parse_json_config():
    assert parse_json_config('{"a": 1}') == {"a": 1}
    assert parse_json_config("") is None
    assert parse_json_config("{}") is None


@pytest.mark.parametrize("code,language", [
    ('{"a": 1}', "json"),
    ("npm install weather-mcp", "bash"),
    ("const server = new Server()", "javascript"),
    ("def main():\n    pass", "python"),
    ("fn main() {}", "rust"),
    ("hello world", "text"),
])
def test_detect_language(code, language):
    assert detect_language(code) == language
