"""
Cache de ofertas dinâmicas por valor (centavos -> offer_hash).
Reuso é só otimização: erro ou entrada vencida gera uma oferta nova, nunca uma
cobrança errada. Entradas são imutáveis e chaveadas pelo valor exato.
"""
import importlib
import logging
import threading
import time
from typing import Callable, Dict, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_TTL = 600  # 10 minutos


class OfferCache:
    def get(self, amount: int) -> Optional[str]:
        raise NotImplementedError()

    def set(self, amount: int, offer_hash: str, ttl: int = DEFAULT_TTL) -> None:
        raise NotImplementedError()


class NullOfferCache(OfferCache):
    """Não guarda nada; cada checkout cria a própria oferta."""

    def get(self, amount: int) -> Optional[str]:
        return None

    def set(self, amount: int, offer_hash: str, ttl: int = DEFAULT_TTL) -> None:
        return None


class InMemoryOfferCache(OfferCache):
    """Cache do processo. Em várias instâncias cada uma tem o seu (use redis)."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[int, Tuple[str, float]] = {}
        self._lock = threading.Lock()

    def get(self, amount: int) -> Optional[str]:
        with self._lock:
            entry = self._entries.get(amount)
            if entry is None:
                return None
            offer_hash, expires_at = entry
            if expires_at <= self._clock():
                self._entries.pop(amount, None)
                return None
            return offer_hash

    def set(self, amount: int, offer_hash: str, ttl: int = DEFAULT_TTL) -> None:
        with self._lock:
            now = self._clock()
            # cada total distinto é uma chave nova; vencidas saem aqui para o dict não crescer sem limite
            expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
            for key in expired:
                del self._entries[key]
            self._entries[amount] = (offer_hash, now + ttl)

    def __len__(self):
        return len(self._entries)


class RedisOfferCache(OfferCache):
    def __init__(self, client, prefix: str = 'paradise:offer:'):
        self.client = client
        self.prefix = prefix

    @classmethod
    def from_url(cls, url: str, **kwargs) -> 'RedisOfferCache':
        redis_module = importlib.import_module('redis')
        client = redis_module.from_url(url, decode_responses=True)
        logger.info('Cache de ofertas usando Redis.')
        return cls(client, **kwargs)

    def get(self, amount: int) -> Optional[str]:
        return self.client.get(f"{self.prefix}{amount}")

    def set(self, amount: int, offer_hash: str, ttl: int = DEFAULT_TTL) -> None:
        self.client.set(f"{self.prefix}{amount}", offer_hash, ex=ttl)


def build_offer_cache(backend: str, redis_url: str = '') -> OfferCache:
    if backend == 'none':
        return NullOfferCache()
    if backend == 'redis':
        return RedisOfferCache.from_url(redis_url)
    return InMemoryOfferCache()
