import json
import logging
from pathlib import Path
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)

# Diretório padrão para arquivos de configuração (apenas JSON, sem código).
CONFIG_DIR = Path(__file__).resolve().parent.parent / "configs"

# Cache por arquivo para evitar re-leituras frequentes.
_CONFIG_CACHE: Dict[str, Dict[str, Any]] = {}


def load_config(name: str, *, use_cache: bool = True, config_dir: Optional[Path] = None) -> Dict[str, Any]:
    """
    Carrega um arquivo JSON de configuração pelo nome (sem extensão).

    Exemplo: load_config("discovery") -> mcp_discovery/configs/discovery.json
    """
    base_dir = config_dir or CONFIG_DIR
    cache_key = f"{base_dir}:{name}"

    if use_cache and cache_key in _CONFIG_CACHE:
        return _CONFIG_CACHE[cache_key]

    config_path = base_dir / f"{name}.json"
    try:
        with open(config_path, "r") as f:
            data = json.load(f)
        if use_cache:
            _CONFIG_CACHE[cache_key] = data
        return data
    except FileNotFoundError:
        logger.warning(f"[config_loader] Arquivo não encontrado: {config_path}")
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning(f"[config_loader] Erro ao carregar {config_path}: {exc}")
    return {}


def get_section(name: str, default: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Carrega um arquivo de config, devolvendo `default` se vazio ou ausente."""
    cfg = load_config(name)
    return cfg if cfg else (default or {})


def reset_cache() -> None:
    """Limpa cache em memória (útil para testes)."""
    _CONFIG_CACHE.clear()
