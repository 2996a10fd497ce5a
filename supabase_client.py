# supabase_client.py
from supabase import create_client, Client
from typing import Optional, Dict, Any, List
import logging
from datetime import datetime

from settings import Settings, get_settings

logger = logging.getLogger(__name__)

class SupabaseClient:
    def __init__(self, admin_client: Client = None, settings: Settings = None):
        """Inicializar cliente Supabase"""
        self.settings = settings or get_settings()
        self.batch_size = self.settings.BATCH_SIZE

        if admin_client is not None:
            self.admin_client = admin_client
            return

        self.url = self.settings.SUPABASE_URL
        self.service_key = self.settings.SUPABASE_SERVICE_KEY

        if not self.url:
            raise ValueError("SUPABASE_URL não configurada")
        if not self.service_key:
            raise ValueError("SUPABASE_SERVICE_KEY não configurada")

        try:
            # Cliente administrativo (bypassa RLS)
            self.admin_client: Client = create_client(self.url, self.service_key)
            logger.info("Cliente Supabase inicializado com sucesso")

        except Exception as e:
            logger.error(f"Erro ao inicializar Supabase: {str(e)}")
            raise ValueError(f"Erro ao conectar com Supabase: {str(e)}")

    # === MÉTODOS DE DADOS ===
    def get_table(self, table_name: str):
        """Obter referência para tabela"""
        return self.admin_client.table(table_name)

    def _primeiro(self, result) -> Optional[Dict[str, Any]]:
        return result.data[0] if result.data else None

    def inserir_em_lotes(self, tabela: str, registros: List[Dict[str, Any]]) -> int:
        """Inserir em lotes (Supabase tem limite por requisição)"""
        salvos = 0
        for i in range(0, len(registros), self.batch_size):
            batch = registros[i:i + self.batch_size]
            result = self.get_table(tabela).insert(batch).execute()
            if result.data:
                salvos += len(result.data)
                logger.info(f"✅ {tabela} lote {i // self.batch_size + 1}: {len(result.data)} registros salvos")
            else:
                logger.error(f"❌ Erro ao salvar lote {i // self.batch_size + 1} em {tabela}")
        return salvos

    def rpc(self, funcao: str, params: Dict[str, Any]):
        return self.admin_client.rpc(funcao, params).execute()

    # === CLIENTES ===
    def listar_clientes_ativos(self) -> List[Dict[str, Any]]:
        result = self.get_table("clients").select("id, name, initials").eq("is_active", True).execute()
        return result.data or []

    def buscar_cliente(self, client_id: str) -> Optional[Dict[str, Any]]:
        result = self.get_table("clients").select("*").eq("id", client_id).limit(1).execute()
        return self._primeiro(result)

    def criar_cliente(self, nome: str, iniciais: str) -> Dict[str, Any]:
        result = self.get_table("clients").insert({
            "name": nome,
            "initials": iniciais,
            "display_order": 999,
        }).execute()

        cliente = self._primeiro(result)
        if not cliente:
            raise ValueError(f"Erro ao criar cliente {nome}")
        logger.info(f"Cliente criado: {nome} ({cliente['id']})")
        return cliente

    def atualizar_cliente(self, client_id: str, campos: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        campos = {**campos, "updated_at": datetime.now().isoformat()}
        result = self.get_table("clients").update(campos).eq("id", client_id).execute()
        return self._primeiro(result)

    # === DEMANDAS ===
    def buscar_demanda_por_codigo(self, codigo: str) -> Optional[Dict[str, Any]]:
        result = self.get_table("demands").select("id").eq("codigo", codigo).limit(1).execute()
        return self._primeiro(result)

    def inserir_demanda(self, dados: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._primeiro(self.get_table("demands").insert(dados).execute())

    def atualizar_demanda(self, demanda_id: str, dados: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._primeiro(self.get_table("demands").update(dados).eq("id", demanda_id).execute())

    def recalcular_demandas_cliente(self, client_id: str):
        return self.rpc("recalculate_client_demands", {"p_client_id": client_id})

    # === NOTIFICAÇÕES ===
    def upsert_notificacoes(self, registros: List[Dict[str, Any]]) -> int:
        salvos = 0
        for i in range(0, len(registros), self.batch_size):
            batch = registros[i:i + self.batch_size]
            result = self.get_table("notifications").upsert(
                batch, on_conflict="empresa_excel,numero_notificacao"
            ).execute()
            salvos += len(result.data or [])
        return salvos

    def recalcular_notificacoes_cliente(self, client_id: str):
        return self.rpc("recalculate_client_notifications", {"p_client_id": client_id})

    # === IMPORTAÇÕES DE PDF ===
    def buscar_pdf_por_hash(self, file_hash: str) -> Optional[Dict[str, Any]]:
        result = self.get_table("pdf_imports").select("id, file_name, created_at").eq("file_hash", file_hash).limit(1).execute()
        return self._primeiro(result)

    def criar_pdf_import(self, dados: Dict[str, Any]) -> Dict[str, Any]:
        registro = self._primeiro(self.get_table("pdf_imports").insert(dados).execute())
        if not registro:
            raise ValueError("Erro ao registrar importação de PDF")
        return registro

    def atualizar_pdf_import(self, import_id: str, dados: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._primeiro(self.get_table("pdf_imports").update(dados).eq("id", import_id).execute())

    def buscar_pdf_import(self, import_id: str) -> Optional[Dict[str, Any]]:
        result = self.get_table("pdf_imports").select("*").eq("id", import_id).limit(1).execute()
        return self._primeiro(result)

    def listar_pdf_imports(self) -> List[Dict[str, Any]]:
        result = self.get_table("pdf_imports").select("*").order("created_at", desc=True).execute()
        return result.data or []

    def excluir_pdf_import(self, import_id: str) -> bool:
        result = self.get_table("pdf_imports").delete().eq("id", import_id).execute()
        return bool(result.data)

    def listar_aliases(self) -> List[Dict[str, Any]]:
        return self.get_table("pdf_client_aliases").select("*").execute().data or []

    def salvar_alias(self, alias_normalized: str, client_id: str, criado_por: str):
        return self.get_table("pdf_client_aliases").upsert({
            "alias_normalized": alias_normalized,
            "client_id": client_id,
            "created_by": criado_por,
        }, on_conflict="alias_normalized").execute()

    def listar_clientes_detectados(self, import_id: str) -> List[Dict[str, Any]]:
        result = self.get_table("pdf_detected_clients").select("*").eq("pdf_import_id", import_id).execute()
        return result.data or []

    def buscar_cliente_detectado(self, detected_id: str) -> Optional[Dict[str, Any]]:
        result = self.get_table("pdf_detected_clients").select("*").eq("id", detected_id).limit(1).execute()
        return self._primeiro(result)

    def atualizar_cliente_detectado(self, detected_id: str, dados: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self._primeiro(self.get_table("pdf_detected_clients").update(dados).eq("id", detected_id).execute())

    def listar_metricas_pdf(self, import_id: str) -> List[Dict[str, Any]]:
        result = self.get_table("pdf_metrics").select("*").eq("pdf_import_id", import_id).execute()
        return result.data or []

    # === LOG DE ATIVIDADES ===
    def log_action(self, user_name: str, action_type: str, entity_type: str,
                   description: str, entity_id: str = None, entity_name: str = None,
                   client_name: str = None):
        """Registrar ação no log de atividades"""
        try:
            self.get_table("activity_logs").insert({
                "user_name": user_name,
                "action_type": action_type,
                "entity_type": entity_type,
                "entity_id": entity_id,
                "entity_name": entity_name,
                "client_name": client_name,
                "description": description,
                "created_at": datetime.now().isoformat()
            }).execute()

        except Exception as e:
            logger.warning(f"Erro ao registrar log: {str(e)}")
            # Não fazer raise para não quebrar a operação principal

    # === MÉTODO DE TESTE ===
    def test_connection(self) -> bool:
        """Testar conexão com o banco"""
        try:
            self.get_table("clients").select("id").limit(1).execute()
            logger.info("Conexão com Supabase testada com sucesso")
            return True
        except Exception as e:
            logger.error(f"Erro ao testar conexão: {str(e)}")
            return False
