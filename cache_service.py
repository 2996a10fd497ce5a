"""
Cache em dois níveis: memória local (L1) e Redis (L2, opcional).

Guarda as sessões do assistente de importação e a lista de clientes ativos.
Sem REDIS_URL, ou com o Redis fora do ar, tudo fica só em memória.
"""
import fnmatch
import json
import logging
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Tuple

import redis

from settings import get_settings

logger = logging.getLogger(__name__)

CHAVE_CLIENTES_ATIVOS = 'clientes:ativos'


class CacheService:
    def __init__(self, redis_url: str = None, session_ttl: int = None):
        settings = get_settings()

        # L1: {chave: {'value': ..., 'expires_at': datetime}}
        self.memory_cache: Dict[str, Dict[str, Any]] = {}

        # L2: só quando houver Redis configurado e respondendo
        self.redis_client: Optional[redis.Redis] = None
        self.redis_available = False

        # Segundos de vida por tipo de dado
        self.ttls = {
            'import_sessions': session_ttl or settings.IMPORT_SESSION_TTL,
            'clientes': 300,
            'default': 300,
        }

        redis_url = redis_url or settings.REDIS_URL
        if redis_url:
            self._conectar_redis(redis_url)
        else:
            logger.info("ℹ️ REDIS_URL não configurada, sessões de importação ficam só em memória")

    def _conectar_redis(self, redis_url: str):
        try:
            cliente = redis.from_url(
                redis_url,
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
            )
            cliente.ping()
        except redis.RedisError as e:
            logger.warning(f"⚠️ Redis indisponível, usando apenas memória: {e}")
            return

        self.redis_client = cliente
        self.redis_available = True
        logger.info("✅ Redis conectado")

    def _redis(self, comando: str, chave: str, operacao: Callable[[redis.Redis], Any]) -> Tuple[bool, Any]:
        """(ok, resultado) de um comando no L2; falhas só são registradas"""
        if not self.redis_available:
            return False, None
        try:
            return True, operacao(self.redis_client)
        except redis.RedisError as e:
            logger.error(f"❌ Erro no Redis {comando} {chave}: {e}")
            return False, None

    def ttl(self, cache_type: str) -> int:
        return self.ttls.get(cache_type, self.ttls['default'])

    def _guardar_memoria(self, key: str, value: Any, cache_type: str):
        self.memory_cache[key] = {
            'value': value,
            'expires_at': datetime.now() + timedelta(seconds=self.ttl(cache_type)),
        }

    def _limpar_expirados(self):
        agora = datetime.now()
        vencidas = [k for k, entrada in self.memory_cache.items() if entrada['expires_at'] <= agora]
        for key in vencidas:
            del self.memory_cache[key]

    @staticmethod
    def _decodificar(bruto: str) -> Any:
        try:
            return json.loads(bruto)
        except ValueError:
            return bruto

    # === OPERAÇÕES ===

    def get(self, key: str, cache_type: str = 'default') -> Optional[Any]:
        """Busca no L1 e, se não achar, no L2 (promovendo o valor para o L1)"""
        entrada = self.memory_cache.get(key)
        if entrada:
            if entrada['expires_at'] > datetime.now():
                return entrada['value']
            del self.memory_cache[key]

        ok, bruto = self._redis('GET', key, lambda r: r.get(key))
        if not ok or bruto is None:
            logger.debug(f"Cache MISS: {key}")
            return None

        valor = self._decodificar(bruto)
        self._guardar_memoria(key, valor, cache_type)
        return valor

    def set(self, key: str, value: Any, cache_type: str = 'default') -> bool:
        """Grava nos dois níveis; False quando o Redis existe mas recusou"""
        self._limpar_expirados()
        self._guardar_memoria(key, value, cache_type)
        if not self.redis_available:
            return True

        serializado = json.dumps(value, ensure_ascii=False, default=str)
        ok, _ = self._redis('SET', key, lambda r: r.setex(key, self.ttl(cache_type), serializado))
        return ok

    def delete(self, key: str) -> bool:
        self.memory_cache.pop(key, None)
        if not self.redis_available:
            return True
        ok, _ = self._redis('DELETE', key, lambda r: r.delete(key))
        return ok

    def invalidate_pattern(self, pattern: str) -> int:
        """Remove as chaves que casam com o padrão glob (ex.: 'clientes:*')"""
        removidas = [k for k in self.memory_cache if fnmatch.fnmatchcase(k, pattern)]
        for key in removidas:
            del self.memory_cache[key]
        count = len(removidas)

        ok, chaves = self._redis('SCAN', pattern, lambda r: list(r.scan_iter(match=pattern)))
        if ok and chaves:
            self._redis('DELETE', pattern, lambda r: r.delete(*chaves))
            count += len(chaves)

        if count:
            logger.info(f"🗑️ Cache invalidado: {count} chaves com padrão '{pattern}'")
        return count

    # === MONITORAMENTO ===

    def get_stats(self) -> Dict[str, Any]:
        stats = {
            'redis_available': self.redis_available,
            'memory_cache_size': len(self.memory_cache),
            'ttls': self.ttls,
        }
        ok, info = self._redis('INFO', '-', lambda r: r.info())
        if ok:
            stats['redis_memory_used'] = info.get('used_memory_human', 'N/A')
            stats['redis_connected_clients'] = info.get('connected_clients', 0)
        return stats

    def health_check(self) -> Dict[str, str]:
        health = {'memory_cache': 'ok', 'redis_cache': 'unavailable'}
        if self.redis_available:
            ok, _ = self._redis('PING', '-', lambda r: r.ping())
            health['redis_cache'] = 'ok' if ok else 'error'
            self.redis_available = ok
        return health

    # === CLIENTES ATIVOS ===

    def get_clientes_ativos(self) -> Optional[List[Dict[str, Any]]]:
        return self.get(CHAVE_CLIENTES_ATIVOS, 'clientes')

    def set_clientes_ativos(self, clientes: List[Dict[str, Any]]) -> bool:
        return self.set(CHAVE_CLIENTES_ATIVOS, clientes, 'clientes')

    def clear_clientes_cache(self):
        """Chamado depois de toda importação que mexe na tabela clients"""
        self.invalidate_pattern('clientes:*')


# Instância global
cache = CacheService()
