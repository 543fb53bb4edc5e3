"""
Cache Manager - Cache de resultados de discovery.

Evita chamadas repetidas à API de busca para queries idênticas,
melhorando performance e reduzindo custos.
"""

import asyncio
import hashlib
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from mcp_discovery.core.constants import CACHE_KEY_PREFIX

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    """Entrada do cache de discovery."""
    key: str
    data: Any
    created_at: float
    ttl_seconds: float
    access_count: int = 0
    last_accessed: float = field(default_factory=time.time)

    def is_expired(self, now: Optional[float] = None) -> bool:
        now = time.time() if now is None else now
        return now - self.created_at > self.ttl_seconds


def generate_cache_key(query: str, options: Optional[Any] = None) -> str:
    """
    Gera chave determinística para (query, options).

    options pode ser dict ou modelo pydantic; a serialização ordena as chaves
    para que a mesma combinação sempre gere a mesma chave.
    """
    if options is not None and hasattr(options, "model_dump"):
        options = options.model_dump()
    normalized = f"{query.lower().strip()}:{json.dumps(options or {}, sort_keys=True, default=str)}"
    return f"{CACHE_KEY_PREFIX}{hashlib.md5(normalized.encode()).hexdigest()}"


class CacheManager:
    """
    Cache TTL com despejo LRU ou FIFO.

    Features:
    - TTL configurável em minutos
    - Limite máximo de entradas (despeja exatamente uma antes de inserir)
    - LRU (menor last_accessed) ou FIFO (mais antiga inserida)
    - Varredura periódica de expiradas, independente de acesso
    - Métricas de hit/miss
    """

    def __init__(
        self,
        enabled: bool = True,
        ttl_minutes: float = 60,
        max_entries: int = 1000,
        enable_lru: bool = True,
        cleanup_interval: float = 300  # 5 minutos
    ):
        """
        Args:
            enabled: Se False, get sempre retorna None e set não armazena
            ttl_minutes: Tempo de vida das entradas em minutos
            max_entries: Máximo de entradas no cache
            enable_lru: True = LRU, False = FIFO
            cleanup_interval: Intervalo da varredura de expiradas em segundos
        """
        self._enabled = enabled
        self._ttl_seconds = ttl_minutes * 60
        self._max_entries = max_entries
        self._enable_lru = enable_lru
        self._cleanup_interval = cleanup_interval

        self._cache: Dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()
        self._cleanup_task: Optional[asyncio.Task] = None

        # Métricas
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0

        self._last_cleanup = time.time()

        logger.info(
            f"CacheManager: enabled={enabled}, max={max_entries}, ttl={ttl_minutes}min, "
            f"policy={'LRU' if enable_lru else 'FIFO'}"
        )

    @property
    def enabled(self) -> bool:
        return self._enabled

    async def get(self, key: str) -> Optional[Any]:
        """
        Busca payload no cache.

        Returns:
            Payload armazenado ou None se ausente/expirado
        """
        if not self._enabled:
            return None

        async with self._lock:
            entry = self._cache.get(key)

            if entry is None:
                self._misses += 1
                return None

            now = time.time()
            if entry.is_expired(now):
                del self._cache[key]
                self._expirations += 1
                self._misses += 1
                return None

            entry.access_count += 1
            entry.last_accessed = now
            self._hits += 1

            logger.debug(f"[Cache] HIT: {key[:30]}...")
            return entry.data

    async def set(self, key: str, data: Any, ttl_minutes: Optional[float] = None) -> None:
        """
        Armazena payload no cache.

        Args:
            key: Chave (ver generate_cache_key)
            data: Payload
            ttl_minutes: TTL específico desta entrada (padrão: configurado)
        """
        if not self._enabled:
            return

        async with self._lock:
            self._maybe_cleanup()

            if key in self._cache:
                del self._cache[key]
            elif len(self._cache) >= self._max_entries:
                self._evict_one()

            now = time.time()
            self._cache[key] = CacheEntry(
                key=key,
                data=data,
                created_at=now,
                ttl_seconds=ttl_minutes * 60 if ttl_minutes is not None else self._ttl_seconds,
                last_accessed=now
            )

            logger.debug(f"[Cache] SET: {key[:30]}...")

    def _maybe_cleanup(self) -> None:
        """Remove entradas expiradas se passou intervalo de limpeza."""
        if time.time() - self._last_cleanup < self._cleanup_interval:
            return
        self._purge_expired()

    def _purge_expired(self) -> int:
        now = time.time()
        self._last_cleanup = now
        expired_keys = [key for key, entry in self._cache.items() if entry.is_expired(now)]

        for key in expired_keys:
            del self._cache[key]

        self._expirations += len(expired_keys)
        if expired_keys:
            logger.debug(f"[Cache] Cleanup: {len(expired_keys)} entradas expiradas removidas")
        return len(expired_keys)

    def _evict_one(self) -> None:
        """Remove exatamente uma entrada (LRU ou FIFO)."""
        if not self._cache:
            return

        if self._enable_lru:
            victim = min(self._cache.keys(), key=lambda k: self._cache[k].last_accessed)
        else:
            victim = next(iter(self._cache))

        del self._cache[victim]
        self._evictions += 1
        logger.debug(f"[Cache] {'LRU' if self._enable_lru else 'FIFO'} eviction: {victim[:30]}...")

    async def cleanup_expired(self) -> int:
        """Varre e remove todas as entradas expiradas. Retorna quantas saíram."""
        async with self._lock:
            return self._purge_expired()

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self._cleanup_interval)
            await self.cleanup_expired()

    def start_cleanup_task(self) -> None:
        """Inicia a varredura periódica no event loop atual."""
        if self._cleanup_task is None or self._cleanup_task.done():
            self._cleanup_task = asyncio.create_task(self._cleanup_loop())
            logger.debug(f"[Cache] Varredura periódica a cada {self._cleanup_interval}s")

    async def stop(self) -> None:
        """Para a varredura periódica."""
        if self._cleanup_task is not None:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass
            self._cleanup_task = None

    async def has(self, key: str) -> bool:
        """True se a chave existe e não expirou (não conta hit/miss)."""
        async with self._lock:
            entry = self._cache.get(key)
            return entry is not None and not entry.is_expired()

    async def delete(self, key: str) -> bool:
        """Invalida entrada específica do cache."""
        async with self._lock:
            if key in self._cache:
                del self._cache[key]
                logger.debug(f"[Cache] Invalidated: {key[:30]}...")
                return True
            return False

    async def clear(self) -> None:
        """Limpa todo o cache."""
        async with self._lock:
            count = len(self._cache)
            self._cache.clear()
            logger.info(f"[Cache] Cleared: {count} entradas removidas")

    def get_hit_rate(self) -> float:
        total_requests = self._hits + self._misses
        return self._hits / total_requests if total_requests > 0 else 0.0

    def get_keys(self) -> List[str]:
        return list(self._cache.keys())

    def get_entry_details(self, key: str) -> Optional[Dict[str, Any]]:
        """Metadados de uma entrada (sem o payload)."""
        entry = self._cache.get(key)
        if entry is None:
            return None
        now = time.time()
        return {
            "key": entry.key,
            "created_at": entry.created_at,
            "ttl_seconds": entry.ttl_seconds,
            "access_count": entry.access_count,
            "last_accessed": entry.last_accessed,
            "age_seconds": round(now - entry.created_at, 3),
            "expired": entry.is_expired(now),
        }

    def get_stats(self) -> Dict[str, Any]:
        """Retorna status e métricas do cache."""
        return {
            "enabled": self._enabled,
            "entries": len(self._cache),
            "max_entries": self._max_entries,
            "hits": self._hits,
            "misses": self._misses,
            "hit_rate": f"{self.get_hit_rate():.1%}",
            "evictions": self._evictions,
            "expirations": self._expirations,
            "config": {
                "ttl_seconds": self._ttl_seconds,
                "policy": "LRU" if self._enable_lru else "FIFO",
                "cleanup_interval": self._cleanup_interval
            }
        }

    def update_config(
        self,
        enabled: Optional[bool] = None,
        max_entries: Optional[int] = None,
        ttl_minutes: Optional[float] = None,
        enable_lru: Optional[bool] = None
    ) -> None:
        """Atualiza configurações do cache."""
        if enabled is not None:
            self._enabled = enabled
        if max_entries is not None:
            self._max_entries = max_entries
        if ttl_minutes is not None:
            self._ttl_seconds = ttl_minutes * 60
        if enable_lru is not None:
            self._enable_lru = enable_lru

        logger.info(
            f"CacheManager: Configuração atualizada - "
            f"max={self._max_entries}, ttl={self._ttl_seconds}s"
        )

    def reset_metrics(self) -> None:
        """Reseta métricas."""
        self._hits = 0
        self._misses = 0
        self._evictions = 0
        self._expirations = 0
        logger.info("CacheManager: Métricas resetadas")
