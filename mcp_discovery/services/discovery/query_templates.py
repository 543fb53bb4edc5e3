"""
Templates de query para discovery de servidores MCP.

Cada template tem variáveis no formato {nome}, uma categoria
(general, technology, tool-type, integration, category-specific, advanced)
e uma prioridade usada para ordenar sugestões.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from mcp_discovery.core.exceptions import TemplateError

logger = logging.getLogger(__name__)

_VARIABLE_PATTERN = re.compile(r"\{([\w-]+)\}")

TEMPLATE_CATEGORIES = (
    "general",
    "technology",
    "tool-type",
    "integration",
    "category-specific",
    "advanced",
)


@dataclass(frozen=True)
class QueryTemplate:
    """Template de query."""
    name: str
    template: str
    category: str
    priority: int
    variables: List[str] = field(default_factory=list)
    description: str = ""


DEFAULT_TEMPLATES: List[QueryTemplate] = [
    # Gerais
    QueryTemplate("general-mcp-search", "Find Model Context Protocol (MCP) servers for {domain}",
                  "general", 100, ["domain"], "Discovery geral de servidores MCP"),
    QueryTemplate("mcp-tools-search", "MCP server tools for {functionality} Model Context Protocol",
                  "general", 95, ["functionality"], "Ferramentas MCP por funcionalidade"),
    # Tecnologia
    QueryTemplate("nodejs-mcp", "Node.js MCP server {technology} Model Context Protocol npm package",
                  "technology", 90, ["technology"], "Servidores MCP em Node.js"),
    QueryTemplate("python-mcp", "Python MCP server {technology} Model Context Protocol pip package",
                  "technology", 90, ["technology"], "Servidores MCP em Python"),
    QueryTemplate("docker-mcp", "Docker MCP server {technology} Model Context Protocol container",
                  "technology", 85, ["technology"], "Servidores MCP em container"),
    # Tipo de ferramenta
    QueryTemplate("filesystem-mcp", "MCP server file system operations Model Context Protocol",
                  "tool-type", 80, [], "Servidores MCP de sistema de arquivos"),
    QueryTemplate("database-mcp", "MCP server {database} database Model Context Protocol",
                  "tool-type", 80, ["database"], "Servidores MCP de banco de dados"),
    QueryTemplate("git-mcp", "MCP server git version control Model Context Protocol",
                  "tool-type", 80, [], "Servidores MCP de git"),
    QueryTemplate("api-mcp", "MCP server {api} API integration Model Context Protocol",
                  "tool-type", 75, ["api"], "Servidores MCP de integração com APIs"),
    QueryTemplate("web-scraping-mcp", "MCP server web scraping {target} Model Context Protocol",
                  "tool-type", 70, ["target"], "Servidores MCP de web scraping"),
    # Integrações
    QueryTemplate("slack-mcp", "MCP server Slack integration Model Context Protocol",
                  "integration", 75, [], "Integração com Slack"),
    QueryTemplate("github-mcp", "MCP server GitHub integration Model Context Protocol",
                  "integration", 75, [], "Integração com GitHub"),
    QueryTemplate("aws-mcp", "MCP server AWS {service} integration Model Context Protocol",
                  "integration", 70, ["service"], "Integração com AWS"),
    QueryTemplate("google-mcp", "MCP server Google {service} integration Model Context Protocol",
                  "integration", 70, ["service"], "Integração com serviços Google"),
    # Por categoria
    QueryTemplate("development-mcp", "MCP server development tools {category} Model Context Protocol",
                  "category-specific", 65, ["category"], "Ferramentas de desenvolvimento"),
    QueryTemplate("testing-mcp", "MCP server testing {framework} Model Context Protocol",
                  "category-specific", 65, ["framework"], "Testes"),
    QueryTemplate("deployment-mcp", "MCP server deployment {platform} Model Context Protocol",
                  "category-specific", 60, ["platform"], "Deploy"),
    QueryTemplate("monitoring-mcp", "MCP server monitoring {tool} Model Context Protocol",
                  "category-specific", 60, ["tool"], "Monitoramento"),
    # Avançados
    QueryTemplate("multi-tool-mcp", "MCP server multiple tools {tools} Model Context Protocol",
                  "advanced", 50, ["tools"], "Servidores com múltiplas ferramentas"),
    QueryTemplate("custom-mcp", "How to create custom MCP server {technology} Model Context Protocol",
                  "advanced", 45, ["technology"], "Criação de servidor MCP próprio"),
    QueryTemplate("mcp-comparison", "Compare MCP servers for {use-case} Model Context Protocol",
                  "advanced", 40, ["use-case"], "Comparação de servidores MCP"),
]

# Dica de contexto -> categoria de template filtrada por substring
_SUGGESTION_SOURCES = (
    ("technology", "technology"),
    ("tool_type", "tool-type"),
    ("category", "category-specific"),
    ("integration", "integration"),
)


class QueryTemplateRegistry:
    """
    Registro de templates de query.

    Instanciado por contexto (sem singleton global); cada QueryConstructor
    recebe o seu registro.
    """

    def __init__(self, templates: Optional[List[QueryTemplate]] = None):
        self._templates: Dict[str, QueryTemplate] = {}
        for template in (DEFAULT_TEMPLATES if templates is None else templates):
            self.add_template(template)

    def get_template(self, name: str) -> Optional[QueryTemplate]:
        return self._templates.get(name)

    def get_templates_by_category(self, category: str) -> List[QueryTemplate]:
        """Templates de uma categoria, por prioridade decrescente."""
        return sorted(
            (t for t in self._templates.values() if t.category == category),
            key=lambda t: t.priority,
            reverse=True
        )

    def get_all_templates(self) -> List[QueryTemplate]:
        return sorted(self._templates.values(), key=lambda t: t.priority, reverse=True)

    def add_template(self, template: QueryTemplate) -> None:
        declared = set(_VARIABLE_PATTERN.findall(template.template))
        if declared != set(template.variables):
            raise TemplateError(
                f"Template '{template.name}' declara variáveis {sorted(template.variables)} "
                f"mas usa {sorted(declared)}"
            )
        self._templates[template.name] = template

    def remove_template(self, name: str) -> bool:
        return self._templates.pop(name, None) is not None

    def generate_query(self, template_name: str, variables: Dict[str, str]) -> str:
        """
        Gera a query substituindo as variáveis do template.

        Raises:
            TemplateError: template inexistente ou variáveis ausentes
        """
        template = self._templates.get(template_name)
        if template is None:
            raise TemplateError(f"Template '{template_name}' não encontrado")

        missing = [v for v in template.variables if not variables.get(v)]
        if missing:
            raise TemplateError(f"Variáveis obrigatórias ausentes: {', '.join(missing)}")

        return _VARIABLE_PATTERN.sub(lambda m: str(variables[m.group(1)]), template.template)

    def suggest_templates(self, context: Dict[str, str]) -> List[QueryTemplate]:
        """
        Sugere templates para um contexto.

        Sempre inclui os gerais; para cada dica (technology, tool_type,
        category, integration) inclui os templates da categoria
        correspondente cujo texto contém a dica.
        """
        suggestions: List[QueryTemplate] = list(self.get_templates_by_category("general"))

        for context_key, template_category in _SUGGESTION_SOURCES:
            hint = (context.get(context_key) or "").lower()
            if not hint:
                continue
            suggestions.extend(
                t for t in self.get_templates_by_category(template_category)
                if hint in t.template.lower()
            )

        unique: Dict[str, QueryTemplate] = {}
        for template in suggestions:
            unique.setdefault(template.name, template)
        return sorted(unique.values(), key=lambda t: t.priority, reverse=True)

    def suggest_queries(self, context: Dict[str, str]) -> List[str]:
        """Queries de exemplo para os templates sugeridos."""
        queries = []
        for template in self.suggest_templates(context):
            variables = {v: context.get(v) or "example" for v in template.variables}
            queries.append(self.generate_query(template.name, variables))
        return queries

    def __len__(self) -> int:
        return len(self._templates)
