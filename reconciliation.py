"""
Estado do assistente de importação.

Uma sessão nasce em `match` logo após o upload, segue para `preview` quando o
usuário confirma as empresas, passa por `importing` durante a gravação e
termina em `complete`. Uma falha na gravação leva a `error`, de onde a sessão
pode voltar para `match`.
"""
import uuid
from datetime import datetime
from typing import Dict, List, Sequence

from loguru import logger

from aggregates import resumir
from cache_service import CacheService, cache
from exceptions import (
    EmpresaNaoEncontradaError,
    ImportacaoError,
    SessaoNaoEncontradaError,
    TransicaoInvalidaError,
)
from matching import casar_empresas, get_perfil
from models import (
    AcaoDuplicadoEnum,
    Cliente,
    EstatisticasSessao,
    EtapaImportacaoEnum,
    MatchTypeEnum,
    ModoImportacaoEnum,
    RelatorioImportacao,
    ResultadoMatch,
    SessaoImportacao,
    TipoImportacaoEnum,
)
from spreadsheet_parsers import agrupar_por_empresa

ETAPAS_EDITAVEIS = (EtapaImportacaoEnum.MATCH, EtapaImportacaoEnum.PREVIEW)


class SessionStore:
    """Sessões de importação guardadas no cache (memória + Redis)"""
    PREFIXO = 'import_session:'

    def __init__(self, cache_service: CacheService = None):
        self.cache = cache_service or cache

    def salvar(self, sessao: SessaoImportacao) -> SessaoImportacao:
        sessao.atualizado_em = datetime.now()
        self.cache.set(self.PREFIXO + sessao.id, sessao.model_dump(mode='json'), 'import_sessions')
        return sessao

    def carregar(self, sessao_id: str) -> SessaoImportacao:
        dados = self.cache.get(self.PREFIXO + sessao_id, 'import_sessions')
        if not dados:
            raise SessaoNaoEncontradaError(f"Sessão de importação não encontrada ou expirada: {sessao_id}")
        return SessaoImportacao.model_validate(dados)

    def remover(self, sessao_id: str):
        self.cache.delete(self.PREFIXO + sessao_id)


def criar_sessao(tipo: TipoImportacaoEnum, arquivo: str, registros: list,
                 clientes: Sequence[Cliente]) -> SessaoImportacao:
    """Agrupa os registros por empresa e casa cada uma com os clientes"""
    grupos = agrupar_por_empresa(registros)
    resultados = casar_empresas(grupos.keys(), clientes, get_perfil(tipo.value))
    for resultado in resultados:
        do_grupo = grupos[resultado.empresa_excel]
        resultado.registros = [r.model_dump(mode='json') for r in do_grupo]
        resultado.resumo = resumir(tipo, do_grupo)

    sessao = SessaoImportacao(
        id=str(uuid.uuid4()),
        tipo=tipo,
        arquivo=arquivo,
        etapa=EtapaImportacaoEnum.MATCH,
        total_linhas=len(registros),
        resultados=resultados,
    )
    stats = estatisticas(sessao)
    logger.info(
        f"🔍 Sessão {sessao.id}: {stats.empresas} empresas "
        f"({stats.exatas} exatas, {stats.sugeridas} sugeridas, {stats.sem_match} sem match)"
    )
    return sessao

# === AÇÕES ===

def _exigir_etapa(sessao: SessaoImportacao, *etapas: EtapaImportacaoEnum):
    if sessao.etapa not in etapas:
        permitidas = ', '.join(e.value for e in etapas)
        raise TransicaoInvalidaError(
            f"Ação não permitida na etapa '{sessao.etapa.value}' (permitido: {permitidas})"
        )


def buscar_resultado(sessao: SessaoImportacao, empresa: str) -> ResultadoMatch:
    for resultado in sessao.resultados:
        if resultado.empresa_excel == empresa:
            return resultado
    raise EmpresaNaoEncontradaError(f"Empresa não encontrada na importação: {empresa}")


def vincular(sessao: SessaoImportacao, empresa: str, cliente: Cliente) -> ResultadoMatch:
    """Vínculo manual com um cliente existente"""
    _exigir_etapa(sessao, *ETAPAS_EDITAVEIS)
    resultado = buscar_resultado(sessao, empresa)
    resultado.match_type = MatchTypeEnum.SUGGESTED
    resultado.client_id = cliente.id
    resultado.client_name = cliente.name
    resultado.confidence = 1.0
    resultado.selected = True
    resultado.ignored = False
    resultado.create_new = False
    return resultado


def ignorar(sessao: SessaoImportacao, empresa: str) -> ResultadoMatch:
    _exigir_etapa(sessao, *ETAPAS_EDITAVEIS)
    resultado = buscar_resultado(sessao, empresa)
    resultado.ignored = True
    resultado.selected = False
    resultado.create_new = False
    return resultado


def marcar_criar_nova(sessao: SessaoImportacao, empresa: str) -> ResultadoMatch:
    """O cliente é criado só na gravação, com o nome vindo do arquivo"""
    _exigir_etapa(sessao, *ETAPAS_EDITAVEIS)
    resultado = buscar_resultado(sessao, empresa)
    resultado.create_new = True
    resultado.selected = True
    resultado.ignored = False
    resultado.client_id = None
    resultado.client_name = None
    return resultado


def alternar_selecao(sessao: SessaoImportacao, empresa: str) -> ResultadoMatch:
    _exigir_etapa(sessao, *ETAPAS_EDITAVEIS)
    resultado = buscar_resultado(sessao, empresa)
    if not resultado.client_id and not resultado.create_new:
        raise ImportacaoError(f"Empresa '{empresa}' não tem cliente vinculado")
    resultado.selected = not resultado.selected
    if resultado.selected:
        resultado.ignored = False
    return resultado


def confirmar(sessao: SessaoImportacao, modo: ModoImportacaoEnum = ModoImportacaoEnum.QUICK,
              acao_duplicado: AcaoDuplicadoEnum = AcaoDuplicadoEnum.SKIP) -> SessaoImportacao:
    _exigir_etapa(sessao, *ETAPAS_EDITAVEIS)
    if not selecionadas(sessao):
        raise ImportacaoError("Nenhuma empresa selecionada para importar")
    sessao.modo = modo
    sessao.acao_duplicado = acao_duplicado
    sessao.etapa = EtapaImportacaoEnum.PREVIEW
    return sessao


def voltar(sessao: SessaoImportacao) -> SessaoImportacao:
    _exigir_etapa(sessao, EtapaImportacaoEnum.PREVIEW, EtapaImportacaoEnum.ERROR)
    sessao.etapa = EtapaImportacaoEnum.MATCH
    sessao.erro = None
    return sessao


def iniciar_importacao(sessao: SessaoImportacao) -> SessaoImportacao:
    _exigir_etapa(sessao, EtapaImportacaoEnum.PREVIEW)
    sessao.etapa = EtapaImportacaoEnum.IMPORTING
    return sessao


def concluir(sessao: SessaoImportacao, relatorio: RelatorioImportacao) -> SessaoImportacao:
    _exigir_etapa(sessao, EtapaImportacaoEnum.IMPORTING)
    sessao.relatorio = relatorio
    sessao.etapa = EtapaImportacaoEnum.COMPLETE
    return sessao


def falhar(sessao: SessaoImportacao, erro: str) -> SessaoImportacao:
    _exigir_etapa(sessao, EtapaImportacaoEnum.IMPORTING)
    sessao.erro = erro
    sessao.etapa = EtapaImportacaoEnum.ERROR
    return sessao

# === VISÕES ===

def encontradas(sessao: SessaoImportacao) -> List[ResultadoMatch]:
    return [
        r for r in sessao.resultados
        if r.match_type != MatchTypeEnum.NONE and not r.ignored
    ]


def nao_encontradas(sessao: SessaoImportacao) -> List[ResultadoMatch]:
    return [
        r for r in sessao.resultados
        if r.match_type == MatchTypeEnum.NONE and not r.ignored and not r.create_new
    ]


def selecionadas(sessao: SessaoImportacao) -> List[ResultadoMatch]:
    return [
        r for r in sessao.resultados
        if r.selected and not r.ignored and (r.client_id or r.create_new)
    ]


def estatisticas(sessao: SessaoImportacao) -> EstatisticasSessao:
    contagem: Dict[MatchTypeEnum, int] = {m: 0 for m in MatchTypeEnum}
    for resultado in sessao.resultados:
        contagem[resultado.match_type] += 1

    return EstatisticasSessao(
        empresas=len(sessao.resultados),
        linhas=sessao.total_linhas,
        exatas=contagem[MatchTypeEnum.EXACT],
        sugeridas=contagem[MatchTypeEnum.SUGGESTED],
        sem_match=contagem[MatchTypeEnum.NONE],
        ignoradas=sum(1 for r in sessao.resultados if r.ignored),
        novas=sum(1 for r in sessao.resultados if r.create_new),
        selecionadas=len(selecionadas(sessao)),
    )
