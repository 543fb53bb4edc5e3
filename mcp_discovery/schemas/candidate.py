"""
Schemas Pydantic do pipeline de discovery.
"""
from typing import List, Literal, Optional, Tuple
from pydantic import BaseModel, Field, ConfigDict


class Candidate(BaseModel):
    """
    Candidato a servidor MCP descoberto.

    Campos:
        name: Nome do servidor
        repository_url: URL do repositório (GitHub/GitLab/...)
        npm_package: Nome do pacote npm, se houver
        documentation_url: URL da documentação (padrão: repositório)
        setup_instructions: Texto livre de instalação/setup
        required_credentials: Credenciais exigidas (advisory)
        confidence_score: Confiança [0, 1]

    Identidade = (name, repository_url). Apenas confidence_score muda
    depois da criação (scorer ou enriquecimento).
    """
    name: str = Field(..., min_length=1, description="Nome do servidor MCP")
    repository_url: str = Field(default="", description="URL do repositório")
    npm_package: Optional[str] = Field(default=None, description="Pacote npm")
    documentation_url: str = Field(default="", description="URL da documentação")
    setup_instructions: str = Field(default="", description="Instruções de setup")
    required_credentials: List[str] = Field(default_factory=list, description="Credenciais exigidas")
    confidence_score: float = Field(default=0.0, ge=0.0, le=1.0, description="Confiança [0, 1]")

    model_config = ConfigDict(
        validate_assignment=True,
        json_schema_extra={
            "example": {
                "name": "filesystem-mcp",
                "repository_url": "https://github.com/modelcontextprotocol/servers/tree/main/src/filesystem",
                "npm_package": "@modelcontextprotocol/server-filesystem",
                "documentation_url": "https://github.com/modelcontextprotocol/servers/tree/main/src/filesystem",
                "setup_instructions": "npm install @modelcontextprotocol/server-filesystem",
                "required_credentials": [],
                "confidence_score": 0.95
            }
        }
    )

    @property
    def identity(self) -> Tuple[str, str]:
        return (self.name, self.repository_url)

    def with_score(self, score: float) -> "Candidate":
        """Cópia com novo score (clampado em [0, 1])."""
        return self.model_copy(update={"confidence_score": max(0.0, min(1.0, score))})


class DiscoveryOptions(BaseModel):
    """
    Filtros e opções de uma chamada de discovery.
    """
    max_results: int = Field(default=10, ge=1, description="Máximo de resultados")
    min_confidence_score: float = Field(default=0.3, ge=0.0, le=1.0, description="Score mínimo")
    categories: List[str] = Field(default_factory=list, description="Manter apenas estas categorias")
    exclude_categories: List[str] = Field(default_factory=list, description="Remover estas categorias")
    include_npm_packages: bool = Field(default=True, description="Manter candidatos com pacote npm")
    include_github_repos: bool = Field(default=True, description="Manter candidatos hospedados no GitHub")
    enable_web_scraping: bool = Field(default=False, description="Enriquecer top candidatos via scraping")
    max_scraping_targets: int = Field(default=3, ge=0, description="Quantos candidatos enriquecer")


class DiscoveryResult(BaseModel):
    """
    Resultado de uma chamada de discovery. Nunca é lançado como exceção:
    falhas viram success=False com error preenchido.
    """
    success: bool = Field(..., description="Indica se a descoberta teve sucesso")
    results: List[Candidate] = Field(default_factory=list, description="Candidatos ranqueados")
    total_found: int = Field(default=0, description="Total de candidatos antes do truncamento")
    search_time: float = Field(default=0.0, description="Tempo total em ms")
    source: Literal["perplexity", "cache", "fallback"] = Field(default="perplexity", description="Origem dos resultados")
    error: Optional[str] = Field(default=None, description="Mensagem de erro, se houver")
    queries_executed: int = Field(default=0, description="Queries enviadas à busca")
    enriched: int = Field(default=0, description="Candidatos enriquecidos via scraping")
