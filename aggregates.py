"""Contadores por empresa e o mapeamento para as colunas da tabela clients"""
from collections import Counter
from datetime import date
from typing import Any, Dict, Optional, Sequence

from matching import COLABORADORES_CONHECIDOS, extrair_colaboradores
from models import (
    RegistroCondicionante,
    RegistroDemanda,
    RegistroItemNotificacao,
    RegistroLicenca,
    RegistroNotificacao,
    RegistroProcesso,
    StatusCondicionanteEnum,
    StatusDemandaEnum,
    StatusItemNotificacaoEnum,
    StatusLicencaEnum,
    StatusNotificacaoEnum,
    StatusProcessoEnum,
    TipoImportacaoEnum,
)


def resumo_demandas(demandas: Sequence[RegistroDemanda]) -> Dict[str, Any]:
    por_status = Counter(d.status for d in demandas)
    por_responsavel = Counter(d.responsavel for d in demandas if d.responsavel)
    colaboradores = []
    for demanda in demandas:
        for colaborador in extrair_colaboradores(demanda.responsavel):
            if colaborador not in colaboradores:
                colaboradores.append(colaborador)

    return {
        'total': len(demandas),
        'por_status': {s.value: por_status.get(s, 0) for s in StatusDemandaEnum},
        'por_responsavel': dict(por_responsavel),
        'colaboradores': colaboradores,
    }


def resumo_licencas(licencas: Sequence[RegistroLicenca], hoje: Optional[date] = None) -> Dict[str, Any]:
    hoje = hoje or date.today()
    contagem = Counter(l.status_calculado for l in licencas)
    futuras = [l.vencimento for l in licencas if l.vencimento and l.vencimento >= hoje]
    proxima = min(futuras) if futuras else None

    return {
        'total': len(licencas),
        'validas': contagem.get(StatusLicencaEnum.VALIDA, 0),
        'proximo_vencimento': contagem.get(StatusLicencaEnum.PROXIMO_VENCIMENTO, 0),
        'fora_validade': contagem.get(StatusLicencaEnum.FORA_VALIDADE, 0),
        'proxima_data_vencimento': proxima.isoformat() if proxima else None,
    }


def resumo_processos(processos: Sequence[RegistroProcesso]) -> Dict[str, Any]:
    contagem = Counter(p.status for p in processos)
    c = {s: contagem.get(s, 0) for s in StatusProcessoEnum}
    return {
        'total': len(processos),
        'deferido': c[StatusProcessoEnum.DEFERIDO],
        'em_analise_orgao': c[StatusProcessoEnum.EM_ANALISE_ORGAO],
        'em_analise_ramos': c[StatusProcessoEnum.EM_ANALISE_RAMOS],
        'notificado': c[StatusProcessoEnum.NOTIFICADO],
        'reprovado': c[StatusProcessoEnum.REPROVADO],
        'outros': c[StatusProcessoEnum.OUTROS],
        'criticos': c[StatusProcessoEnum.NOTIFICADO] + c[StatusProcessoEnum.REPROVADO],
        'em_andamento': (
            c[StatusProcessoEnum.EM_ANALISE_ORGAO]
            + c[StatusProcessoEnum.EM_ANALISE_RAMOS]
            + c[StatusProcessoEnum.NOTIFICADO]
        ),
    }


def resumo_notificacoes(notificacoes: Sequence[RegistroNotificacao]) -> Dict[str, Any]:
    atendidas = sum(1 for n in notificacoes if n.status == StatusNotificacaoEnum.ATENDIDA)
    return {
        'total': len(notificacoes),
        'pendentes': len(notificacoes) - atendidas,
        'atendidas': atendidas,
    }


def resumo_itens_notificacao(itens: Sequence[RegistroItemNotificacao]) -> Dict[str, Any]:
    contagem = Counter(i.status for i in itens)
    return {
        'total': len(itens),
        'atendido': contagem.get(StatusItemNotificacaoEnum.ATENDIDO, 0),
        'pendente': contagem.get(StatusItemNotificacaoEnum.PENDENTE, 0),
        'vencido': contagem.get(StatusItemNotificacaoEnum.VENCIDO, 0),
    }


def resumo_condicionantes(condicionantes: Sequence[RegistroCondicionante]) -> Dict[str, Any]:
    contagem = Counter(c.status for c in condicionantes)
    # A_FAZER entra junto com A_VENCER
    return {
        'total': len(condicionantes),
        'atendidas': contagem.get(StatusCondicionanteEnum.ATENDIDA, 0),
        'a_vencer': (
            contagem.get(StatusCondicionanteEnum.A_VENCER, 0)
            + contagem.get(StatusCondicionanteEnum.A_FAZER, 0)
        ),
        'vencidas': contagem.get(StatusCondicionanteEnum.VENCIDA, 0),
    }


RESUMOS = {
    TipoImportacaoEnum.DEMANDAS: resumo_demandas,
    TipoImportacaoEnum.LICENCAS: resumo_licencas,
    TipoImportacaoEnum.PROCESSOS: resumo_processos,
    TipoImportacaoEnum.NOTIFICACOES: resumo_notificacoes,
    TipoImportacaoEnum.ITENS_NOTIFICACAO: resumo_itens_notificacao,
    TipoImportacaoEnum.CONDICIONANTES: resumo_condicionantes,
}


def resumir(tipo: TipoImportacaoEnum, registros: list) -> Dict[str, Any]:
    return RESUMOS[tipo](registros)

# === COLUNAS DA TABELA clients ===

def campos_demandas_somados(cliente: Dict[str, Any], resumo: Dict[str, Any]) -> Dict[str, Any]:
    """Soma as demandas aos contadores atuais e acumula os colaboradores"""
    por_status = resumo['por_status']
    campos = {
        'demands_completed': (cliente.get('demands_completed') or 0) + por_status.get('CONCLUIDO', 0),
        'demands_in_progress': (cliente.get('demands_in_progress') or 0) + por_status.get('EM_EXECUCAO', 0),
        'demands_not_started': (cliente.get('demands_not_started') or 0) + por_status.get('NAO_FEITO', 0),
        'demands_cancelled': (cliente.get('demands_cancelled') or 0) + por_status.get('CANCELADO', 0),
    }
    for colaborador in COLABORADORES_CONHECIDOS:
        coluna = f'collaborator_{colaborador}'
        campos[coluna] = bool(cliente.get(coluna)) or colaborador in resumo['colaboradores']
    return campos


def campos_licencas(resumo: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'lic_validas_count': resumo['validas'],
        'lic_proximo_venc_count': resumo['proximo_vencimento'],
        'lic_fora_validade_count': resumo['fora_validade'],
        'lic_proxima_data_vencimento': resumo['proxima_data_vencimento'],
    }


def campos_processos(resumo: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'proc_total_count': resumo['total'],
        'proc_deferido_count': resumo['deferido'],
        'proc_em_analise_orgao_count': resumo['em_analise_orgao'],
        'proc_em_analise_ramos_count': resumo['em_analise_ramos'],
        'proc_notificado_count': resumo['notificado'],
        'proc_reprovado_count': resumo['reprovado'],
    }


def campos_itens_notificacao(resumo: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'notif_item_atendido_count': resumo['atendido'],
        'notif_item_pendente_count': resumo['pendente'],
        'notif_item_vencido_count': resumo['vencido'],
    }


def campos_condicionantes(resumo: Dict[str, Any]) -> Dict[str, Any]:
    return {
        'cond_atendidas_count': resumo['atendidas'],
        'cond_a_vencer_count': resumo['a_vencer'],
        'cond_vencidas_count': resumo['vencidas'],
    }
