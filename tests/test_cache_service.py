from datetime import datetime, timedelta

from cache_service import CacheService


def test_set_e_get_em_memoria(cache_service):
    assert cache_service.set("teste", {"msg": "ok"}, "import_sessions")
    assert cache_service.get("teste", "import_sessions") == {"msg": "ok"}
    assert cache_service.get("outra") is None


def test_item_expirado_sai_do_cache(cache_service):
    cache_service.set("teste", 1)
    cache_service.memory_cache["teste"]["expires_at"] = datetime.now() - timedelta(seconds=1)

    assert cache_service.get("teste") is None
    assert "teste" not in cache_service.memory_cache


def test_ttl_por_tipo():
    servico = CacheService(session_ttl=42)
    assert servico.ttl("import_sessions") == 42
    assert servico.ttl("clientes") == 300
    assert servico.ttl("desconhecido") == servico.ttls["default"]


def test_delete_e_invalidate_pattern(cache_service):
    cache_service.set("clientes:ativos", [1])
    cache_service.set("clientes:inativos", [2])
    cache_service.set("import_session:abc", {})

    assert cache_service.invalidate_pattern("clientes:*") == 2
    assert cache_service.get("import_session:abc") == {}

    cache_service.delete("import_session:abc")
    assert cache_service.get("import_session:abc") is None


def test_cache_de_clientes(cache_service):
    assert cache_service.get_clientes_ativos() is None
    cache_service.set_clientes_ativos([{"id": "c1", "name": "Petróleo Ltda"}])
    assert cache_service.get_clientes_ativos() == [{"id": "c1", "name": "Petróleo Ltda"}]

    cache_service.clear_clientes_cache()
    assert cache_service.get_clientes_ativos() is None


def test_sem_redis_configurado(cache_service):
    assert not cache_service.redis_available
    assert cache_service.health_check() == {"memory_cache": "ok", "redis_cache": "unavailable"}
    assert cache_service.get_stats()["memory_cache_size"] == 0


def test_redis_inacessivel_cai_para_memoria():
    servico = CacheService(redis_url="redis://127.0.0.1:1/0")

    assert not servico.redis_available
    assert servico.set("teste", "valor")
    assert servico.get("teste") == "valor"


def test_gravacao_remove_expirados_de_outras_chaves(cache_service):
    cache_service.set("import_session:antiga", {"id": "antiga"}, "import_sessions")
    cache_service.memory_cache["import_session:antiga"]["expires_at"] = datetime.now() - timedelta(seconds=1)

    cache_service.set("import_session:nova", {"id": "nova"}, "import_sessions")

    assert "import_session:antiga" not in cache_service.memory_cache
    assert cache_service.get("import_session:nova", "import_sessions") == {"id": "nova"}
