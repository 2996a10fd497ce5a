"""Gravação das importações de planilhas na tabela de clientes e afins"""
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

import reconciliation
from aggregates import (
    campos_condicionantes,
    campos_demandas_somados,
    campos_itens_notificacao,
    campos_licencas,
    campos_processos,
)
from cache_service import CacheService, cache
from exceptions import ClienteNaoEncontradoError, ImportacaoError, PlanilhaInvalidaError
from matching import casar_colaborador, gerar_iniciais
from models import (
    AcaoDuplicadoEnum,
    Cliente,
    ColaboradorMatch,
    ModoImportacaoEnum,
    RelatorioImportacao,
    ResultadoMatch,
    SessaoImportacao,
    TipoImportacaoEnum,
)
from reconciliation import SessionStore
from settings import Settings, get_settings
from spreadsheet_parsers import processar_planilha
from supabase_client import SupabaseClient

CAMPOS_DEMANDA = (
    'data', 'descricao', 'responsavel', 'status', 'topico',
    'subtopico', 'plano', 'comentario', 'origem',
)


class ImportService:
    def __init__(self, db: SupabaseClient, store: SessionStore = None,
                 cache_service: CacheService = None, settings: Settings = None):
        self.db = db
        self.cache = cache_service or cache
        self.store = store or SessionStore(self.cache)
        self.settings = settings or get_settings()

    # === CLIENTES ===

    def listar_clientes(self) -> List[Cliente]:
        """Clientes ativos, com cache curto"""
        clientes = self.cache.get_clientes_ativos()
        if clientes is None:
            clientes = self.db.listar_clientes_ativos()
            self.cache.set_clientes_ativos(clientes)
        return [Cliente.model_validate(c) for c in clientes]

    def _cliente(self, client_id: str) -> Cliente:
        for cliente in self.listar_clientes():
            if cliente.id == client_id:
                return cliente
        raise ClienteNaoEncontradoError(f"Cliente não encontrado: {client_id}")

    # === SESSÃO ===

    def iniciar(self, tipo: TipoImportacaoEnum, arquivo: str, conteudo: bytes) -> SessaoImportacao:
        """Ler o arquivo, casar as empresas e abrir a sessão de conciliação"""
        registros = processar_planilha(
            conteudo, arquivo, tipo, dias_aviso=self.settings.DIAS_AVISO_VENCIMENTO
        )
        if not registros:
            raise PlanilhaInvalidaError("Nenhum registro válido encontrado no arquivo")

        sessao = reconciliation.criar_sessao(tipo, arquivo, registros, self.listar_clientes())
        return self.store.salvar(sessao)

    def obter(self, sessao_id: str) -> SessaoImportacao:
        return self.store.carregar(sessao_id)

    def vincular(self, sessao_id: str, empresa: str, client_id: str) -> SessaoImportacao:
        sessao = self.store.carregar(sessao_id)
        reconciliation.vincular(sessao, empresa, self._cliente(client_id))
        return self.store.salvar(sessao)

    def ignorar(self, sessao_id: str, empresa: str) -> SessaoImportacao:
        sessao = self.store.carregar(sessao_id)
        reconciliation.ignorar(sessao, empresa)
        return self.store.salvar(sessao)

    def criar_nova(self, sessao_id: str, empresa: str) -> SessaoImportacao:
        sessao = self.store.carregar(sessao_id)
        reconciliation.marcar_criar_nova(sessao, empresa)
        return self.store.salvar(sessao)

    def alternar_selecao(self, sessao_id: str, empresa: str) -> SessaoImportacao:
        sessao = self.store.carregar(sessao_id)
        reconciliation.alternar_selecao(sessao, empresa)
        return self.store.salvar(sessao)

    def confirmar(self, sessao_id: str, modo: ModoImportacaoEnum,
                  acao_duplicado: AcaoDuplicadoEnum) -> SessaoImportacao:
        sessao = self.store.carregar(sessao_id)
        reconciliation.confirmar(sessao, modo, acao_duplicado)
        return self.store.salvar(sessao)

    def voltar(self, sessao_id: str) -> SessaoImportacao:
        sessao = self.store.carregar(sessao_id)
        reconciliation.voltar(sessao)
        return self.store.salvar(sessao)

    def casar_colaboradores(self, sessao_id: str, colaboradores: Sequence[Cliente]) -> List[ColaboradorMatch]:
        """Casa os responsáveis das demandas com os colaboradores cadastrados"""
        sessao = self.store.carregar(sessao_id)
        if sessao.tipo != TipoImportacaoEnum.DEMANDAS:
            raise ImportacaoError("Colaboradores só existem em importações de demandas")

        nomes = []
        for resultado in sessao.resultados:
            for registro in resultado.registros:
                responsavel = (registro.get('responsavel') or '').strip()
                if responsavel and responsavel not in nomes:
                    nomes.append(responsavel)
        return [casar_colaborador(nome, colaboradores) for nome in nomes]

    # === GRAVAÇÃO ===

    def importar(self, sessao_id: str, usuario: Optional[str] = None) -> SessaoImportacao:
        """Gravar as empresas selecionadas e fechar a sessão"""
        usuario = usuario or self.settings.USUARIO_PADRAO
        sessao = self.store.carregar(sessao_id)
        reconciliation.iniciar_importacao(sessao)
        self.store.salvar(sessao)

        logger.info(f"💾 Importando sessão {sessao.id} ({sessao.tipo.value}, modo {sessao.modo.value})")
        try:
            relatorio = RelatorioImportacao()
            self._criar_clientes_novos(sessao, relatorio)
            GRAVADORES[sessao.tipo](self, sessao, relatorio)
        except Exception as e:
            logger.error(f"❌ Erro ao importar sessão {sessao.id}: {str(e)}")
            reconciliation.falhar(sessao, str(e))
            self.store.salvar(sessao)
            raise
        finally:
            self.cache.clear_clientes_cache()

        reconciliation.concluir(sessao, relatorio)
        self.store.salvar(sessao)

        self.db.log_action(
            user_name=usuario,
            action_type='import',
            entity_type=sessao.tipo.value,
            entity_id=sessao.id,
            entity_name=sessao.arquivo,
            description=(
                f"Importou \"{sessao.arquivo}\": {relatorio.empresas_atualizadas} empresas, "
                f"{relatorio.registros_inseridos} inseridos, {relatorio.registros_atualizados} atualizados, "
                f"{relatorio.registros_ignorados} ignorados"
            ),
        )
        logger.info(f"🎉 Sessão {sessao.id} importada: {relatorio.model_dump()}")
        return sessao

    def _criar_clientes_novos(self, sessao: SessaoImportacao, relatorio: RelatorioImportacao):
        for resultado in reconciliation.selecionadas(sessao):
            if not resultado.create_new or resultado.client_id:
                continue
            try:
                cliente = self.db.criar_cliente(resultado.empresa_excel, gerar_iniciais(resultado.empresa_excel))
            except Exception as e:
                logger.warning(f"⚠️ Erro ao criar cliente {resultado.empresa_excel}: {e}")
                relatorio.erros += 1
                relatorio.mensagens.append(f"Cliente não criado: {resultado.empresa_excel}")
                continue
            resultado.client_id = cliente['id']
            resultado.client_name = cliente['name']
            relatorio.clientes_criados += 1

    def _com_cliente(self, sessao: SessaoImportacao) -> List[ResultadoMatch]:
        return [r for r in reconciliation.selecionadas(sessao) if r.client_id]

    def _atualizar_contadores(self, resultado: ResultadoMatch, campos: Dict[str, Any],
                              relatorio: RelatorioImportacao) -> bool:
        try:
            self.db.atualizar_cliente(resultado.client_id, campos)
        except Exception as e:
            logger.warning(f"⚠️ Erro ao atualizar cliente {resultado.client_id}: {e}")
            relatorio.erros += 1
            relatorio.mensagens.append(f"Contadores não atualizados: {resultado.empresa_excel}")
            return False
        relatorio.empresas_atualizadas += 1
        return True

    def _inserir_linhas(self, tabela: str, linhas: List[Dict[str, Any]], relatorio: RelatorioImportacao):
        if not linhas:
            return
        try:
            relatorio.registros_inseridos += self.db.inserir_em_lotes(tabela, linhas)
        except Exception as e:
            logger.warning(f"⚠️ Erro ao inserir em {tabela}: {e}")
            relatorio.erros += 1
            relatorio.mensagens.append(f"Falha ao gravar {tabela}: {e}")

    # --- demandas ---

    def _gravar_demandas(self, sessao: SessaoImportacao, relatorio: RelatorioImportacao):
        if sessao.modo == ModoImportacaoEnum.QUICK:
            for resultado in self._com_cliente(sessao):
                cliente = self.db.buscar_cliente(resultado.client_id)
                if not cliente:
                    relatorio.erros += 1
                    relatorio.mensagens.append(f"Cliente não encontrado: {resultado.client_id}")
                    continue
                campos = campos_demandas_somados(cliente, resultado.resumo)
                self._atualizar_contadores(resultado, campos, relatorio)
            return

        afetados = []
        for resultado in self._com_cliente(sessao):
            for registro in resultado.registros:
                self._gravar_demanda(resultado, registro, sessao.acao_duplicado, relatorio)
            afetados.append(resultado.client_id)

        for client_id in afetados:
            try:
                self.db.recalcular_demandas_cliente(client_id)
            except Exception as e:
                logger.warning(f"⚠️ Erro ao recalcular demandas do cliente {client_id}: {e}")
                relatorio.erros += 1
        relatorio.empresas_atualizadas += len(afetados)

    def _gravar_demanda(self, resultado: ResultadoMatch, registro: Dict[str, Any],
                        acao: AcaoDuplicadoEnum, relatorio: RelatorioImportacao):
        dados = {campo: registro.get(campo) for campo in CAMPOS_DEMANDA}
        dados['client_id'] = resultado.client_id
        dados['empresa_excel'] = resultado.empresa_excel
        codigo = registro.get('codigo')

        try:
            existente = self.db.buscar_demanda_por_codigo(codigo) if codigo else None
            if existente:
                if acao == AcaoDuplicadoEnum.SKIP:
                    relatorio.registros_ignorados += 1
                    return
                self.db.atualizar_demanda(existente['id'], dados)
                relatorio.registros_atualizados += 1
                return

            self.db.inserir_demanda({'codigo': codigo, **dados})
            relatorio.registros_inseridos += 1
        except Exception as e:
            logger.warning(f"⚠️ Erro ao gravar demanda {codigo}: {e}")
            relatorio.erros += 1

    # --- licenças ---

    def _gravar_licencas(self, sessao: SessaoImportacao, relatorio: RelatorioImportacao):
        linhas = []
        for resultado in self._com_cliente(sessao):
            self._atualizar_contadores(resultado, campos_licencas(resultado.resumo), relatorio)
            for registro in resultado.registros:
                linhas.append({
                    'client_id': resultado.client_id,
                    'empresa_excel': resultado.empresa_excel,
                    'tipo_licenca': registro.get('tipo_licenca'),
                    'licenca': registro.get('licenca'),
                    'num_processo': registro.get('num_processo'),
                    'data_emissao': registro.get('data_emissao'),
                    'vencimento': registro.get('vencimento'),
                    'status_calculado': registro.get('status_calculado'),
                })
        self._inserir_linhas('licenses', linhas, relatorio)

    # --- processos ---

    def _gravar_processos(self, sessao: SessaoImportacao, relatorio: RelatorioImportacao):
        linhas = []
        for resultado in self._com_cliente(sessao):
            self._atualizar_contadores(resultado, campos_processos(resultado.resumo), relatorio)
            if sessao.modo != ModoImportacaoEnum.COMPLETE:
                continue
            for registro in resultado.registros:
                linhas.append({
                    'client_id': resultado.client_id,
                    'empresa_excel': resultado.empresa_excel,
                    'tipo_processo': registro.get('tipo_processo'),
                    'numero_processo': registro.get('numero_processo'),
                    'data_protocolo': registro.get('data_protocolo'),
                    'status': registro.get('status'),
                })
        self._inserir_linhas('processes', linhas, relatorio)

    # --- notificações ---

    def _gravar_notificacoes(self, sessao: SessaoImportacao, relatorio: RelatorioImportacao):
        linhas = []
        afetados = []
        for resultado in self._com_cliente(sessao):
            afetados.append(resultado.client_id)
            for registro in resultado.registros:
                linhas.append({
                    'client_id': resultado.client_id,
                    'empresa_excel': resultado.empresa_excel,
                    'numero_processo': registro.get('numero_processo'),
                    'numero_notificacao': registro.get('numero_notificacao'),
                    'descricao': registro.get('descricao'),
                    'data_recebimento': registro.get('data_recebimento'),
                    'status': registro.get('status'),
                })

        try:
            relatorio.registros_inseridos += self.db.upsert_notificacoes(linhas)
        except Exception as e:
            logger.warning(f"⚠️ Erro ao gravar notificações: {e}")
            relatorio.erros += 1
            relatorio.mensagens.append(f"Falha ao gravar notificações: {e}")
            return

        for client_id in afetados:
            try:
                self.db.recalcular_notificacoes_cliente(client_id)
            except Exception as e:
                logger.warning(f"⚠️ Erro ao recalcular notificações do cliente {client_id}: {e}")
                relatorio.erros += 1
        relatorio.empresas_atualizadas += len(afetados)

    # --- itens de notificação e condicionantes ---

    def _gravar_itens_notificacao(self, sessao: SessaoImportacao, relatorio: RelatorioImportacao):
        for resultado in self._com_cliente(sessao):
            self._atualizar_contadores(resultado, campos_itens_notificacao(resultado.resumo), relatorio)

    def _gravar_condicionantes(self, sessao: SessaoImportacao, relatorio: RelatorioImportacao):
        for resultado in self._com_cliente(sessao):
            self._atualizar_contadores(resultado, campos_condicionantes(resultado.resumo), relatorio)


GRAVADORES = {
    TipoImportacaoEnum.DEMANDAS: ImportService._gravar_demandas,
    TipoImportacaoEnum.LICENCAS: ImportService._gravar_licencas,
    TipoImportacaoEnum.PROCESSOS: ImportService._gravar_processos,
    TipoImportacaoEnum.NOTIFICACOES: ImportService._gravar_notificacoes,
    TipoImportacaoEnum.ITENS_NOTIFICACAO: ImportService._gravar_itens_notificacao,
    TipoImportacaoEnum.CONDICIONANTES: ImportService._gravar_condicionantes,
}
