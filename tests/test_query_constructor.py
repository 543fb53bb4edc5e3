"""
Testes do QueryTemplateRegistry e do QueryConstructor.
"""

import pytest

from mcp_discovery.core.exceptions import TemplateError
from mcp_discovery.services.discovery import (
    QueryConstructor,
    QueryContext,
    QueryTemplate,
    QueryTemplateRegistry,
)
from mcp_discovery.services.discovery.query_constructor import GENERAL_FALLBACK_QUERY


# --- Templates ---

def test_generate_query_substitutes_variables():
    registry = QueryTemplateRegistry()
    query = registry.generate_query("database-mcp", {"database": "postgres"})
    assert query == "MCP server postgres database Model Context Protocol"


def test_generate_query_with_missing_variable_raises():
    registry = QueryTemplateRegistry()
    with pytest.raises(TemplateError):
        registry.generate_query("database-mcp", {})


def test_unknown_template_raises():
    with pytest.raises(TemplateError):
        QueryTemplateRegistry().generate_query("nao-existe", {})


def test_add_template_validates_declared_variables():
    registry = QueryTemplateRegistry(templates=[])
    with pytest.raises(TemplateError):
        registry.add_template(QueryTemplate("bad", "MCP {x} {y}", "general", 10, ["x"]))

    registry.add_template(QueryTemplate("ok", "MCP {x}", "general", 10, ["x"]))
    assert len(registry) == 1
    assert registry.remove_template("ok")
    assert not registry.remove_template("ok")


def test_templates_by_category_sorted_by_priority():
    templates = QueryTemplateRegistry().get_templates_by_category("general")
    priorities = [t.priority for t in templates]
    assert priorities == sorted(priorities, reverse=True)
    assert templates[0].name == "general-mcp-search"


def test_suggest_templates_always_includes_general():
    registry = QueryTemplateRegistry()
    names = [t.name for t in registry.suggest_templates({"technology": "python"})]

    assert "general-mcp-search" in names
    assert "python-mcp" in names
    assert "nodejs-mcp" not in names


def test_suggest_queries_fill_missing_variables():
    queries = QueryTemplateRegistry().suggest_queries({"domain": "databases"})
    assert "Find Model Context Protocol (MCP) servers for databases" in queries


# --- Constructor ---

@pytest.mark.parametrize("tool_name", ["git-commit", "branch-manager"])
def test_analyze_tool_classifies_version_control(tool_name):
    analysis = QueryConstructor().analyze_tool(tool_name)
    assert analysis.category == "version-control"
    assert analysis.confidence >= 0.8


def test_analyze_unknown_tool_keeps_defaults():
    analysis = QueryConstructor().analyze_tool("xyzzy")
    assert analysis.category == "general"
    assert analysis.technology == "unknown"
    assert analysis.confidence == 0.5


def test_normalize_technologies_maps_aliases_without_duplicates():
    normalized = QueryConstructor.normalize_technologies(["Node", "js", "typescript", "postgres", "Rust"])
    assert normalized == ["nodejs", "database", "rust"]


def test_construct_queries_for_version_control_tools():
    constructor = QueryConstructor()
    queries = constructor.construct_queries(QueryContext(tool_names=["git-commit", "branch-manager"]))

    texts = [q.query for q in queries]
    assert "MCP server version-control tools Model Context Protocol" in texts
    assert any(q.template == "multi-tool" for q in queries)
    assert sum(1 for q in queries if q.template == "tool-specific") == 2

    confidences = [q.confidence for q in queries]
    assert confidences == sorted(confidences, reverse=True)


def test_construct_queries_uses_technology_templates():
    queries = QueryConstructor().construct_queries(QueryContext(technologies=["python"]))
    assert queries[0].template == "python-mcp"
    assert queries[0].query == "Python MCP server python Model Context Protocol pip package"


def test_quick_depth_keeps_top_three():
    context = QueryContext(
        tool_names=["git-commit", "read-file", "sql-query"],
        technologies=["python", "docker"],
        search_depth="quick",
    )
    queries = QueryConstructor().construct_queries(context)
    assert len(queries) == 3


def test_empty_context_yields_general_query():
    queries = QueryConstructor().construct_queries(QueryContext())
    assert len(queries) == 1
    assert queries[0].query == GENERAL_FALLBACK_QUERY
    assert queries[0].search_strategy == "fallback"


def test_construction_error_falls_back(monkeypatch):
    constructor = QueryConstructor()

    def broken(*args, **kwargs):
        raise TemplateError("quebrado")

    monkeypatch.setattr(constructor, "_generate_queries", broken)
    queries = constructor.construct_queries(QueryContext(technologies=["python"]))

    assert [q.template for q in queries] == ["fallback-general", "fallback-technology"]


def test_history_and_stats_are_tracked():
    constructor = QueryConstructor()
    constructor.construct_queries(QueryContext(technologies=["python"]))

    assert len(constructor.get_history()) == 1
    stats = constructor.get_stats()
    assert stats["constructions"] == 1
    assert stats["total_queries_constructed"] >= 1
