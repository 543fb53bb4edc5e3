import logging
from typing import Optional

from mcp_discovery.core.config import settings

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def setup_logging(level: Optional[str] = None) -> None:
    """Configura o logging raiz. Nível padrão vem de LOG_LEVEL."""
    level_name = (level or settings.LOG_LEVEL or "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level_name, logging.INFO),
        format=LOG_FORMAT
    )
    # httpx loga cada requisição em INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
