"""
Fixtures compartilhadas dos testes do MCP Discovery.
"""

from types import SimpleNamespace
from unittest.mock import AsyncMock

import httpx
import pytest

from mcp_discovery.schemas.candidate import Candidate


POSTGRES_RESPONSE = """Here are MCP servers for PostgreSQL:

1. **PostgreSQL MCP Server** (postgres-mcp)
   - Repository: https://github.com/example/postgres-mcp
   - Install: npm install postgres-mcp
   - Requires POSTGRES_CONNECTION_STRING and an API key for the hosted mode.

2. **Filesystem MCP Server**
   - Package: @modelcontextprotocol/server-filesystem
   - Repository: https://github.com/modelcontextprotocol/servers/tree/main/src/filesystem
   - Setup: npx @modelcontextprotocol/server-filesystem /path/to/dir
"""


def make_candidate(**overrides) -> Candidate:
    """Candidato padrão (servidor oficial de filesystem) com campos sobrescritos."""
    data = {
        "name": "filesystem-mcp",
        "repository_url": "https://github.com/modelcontextprotocol/servers/tree/main/src/filesystem",
        "npm_package": "@modelcontextprotocol/server-filesystem",
        "documentation_url": "https://github.com/modelcontextprotocol/servers/tree/main/src/filesystem",
        "setup_instructions": "npm install @modelcontextprotocol/server-filesystem\nConfigure allowed directories",
        "required_credentials": [],
        "confidence_score": 0.5,
    }
    data.update(overrides)
    return Candidate(**data)


def completion(content: str, total_tokens: int = 42):
    """Resposta no formato de chat.completions.create."""
    return SimpleNamespace(
        choices=[SimpleNamespace(message=SimpleNamespace(content=content))],
        usage=SimpleNamespace(model_dump=lambda: {"total_tokens": total_tokens}),
    )


def fake_openai_client(*responses):
    """
    Cliente OpenAI falso: cada chamada consome o próximo item.

    Itens que são exceções são lançados; strings viram completions.
    """
    side_effect = [r if isinstance(r, BaseException) else completion(r) for r in responses]
    create = AsyncMock(side_effect=side_effect)
    return SimpleNamespace(
        chat=SimpleNamespace(completions=SimpleNamespace(create=create)),
        close=AsyncMock(),
    )


def http_response(status: int, headers=None) -> httpx.Response:
    request = httpx.Request("POST", "https://api.perplexity.ai/chat/completions")
    return httpx.Response(status, headers=headers or {}, request=request)


@pytest.fixture
def candidate_factory():
    return make_candidate


@pytest.fixture
def postgres_response():
    return POSTGRES_RESPONSE
