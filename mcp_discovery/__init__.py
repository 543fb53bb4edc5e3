"""
MCP Discovery - Pipeline de descoberta de servidores MCP.

Descobre, ranqueia e armazena em cache candidatos a servidores
Model Context Protocol a partir de uma query livre ou de dicas
de ferramentas/tecnologias/categorias.
"""

from mcp_discovery.core.constants import VERSION

__version__ = VERSION
