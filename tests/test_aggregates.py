from datetime import date

from aggregates import (
    campos_condicionantes,
    campos_demandas_somados,
    campos_itens_notificacao,
    campos_licencas,
    campos_processos,
    resumir,
    resumo_condicionantes,
    resumo_demandas,
    resumo_itens_notificacao,
    resumo_licencas,
    resumo_notificacoes,
    resumo_processos,
)
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


def _demanda(codigo, status, responsavel=None):
    return RegistroDemanda(codigo=codigo, empresa="Alfa", descricao="x", status=status, responsavel=responsavel)


def test_resumo_demandas():
    resumo = resumo_demandas([
        _demanda("1", StatusDemandaEnum.CONCLUIDO, "Gabi"),
        _demanda("2", StatusDemandaEnum.EM_EXECUCAO, "Darley e Celine"),
        _demanda("3", StatusDemandaEnum.CONCLUIDO, "Gabi"),
        _demanda("4", StatusDemandaEnum.NAO_FEITO),
    ])

    assert resumo["total"] == 4
    assert resumo["por_status"] == {"CONCLUIDO": 2, "EM_EXECUCAO": 1, "NAO_FEITO": 1, "CANCELADO": 0}
    assert resumo["por_responsavel"] == {"Gabi": 2, "Darley e Celine": 1}
    assert resumo["colaboradores"] == ["gabi", "celine", "darley"]


def test_demandas_somam_aos_contadores_do_cliente():
    cliente = {
        "demands_completed": 2, "demands_in_progress": 1, "demands_not_started": None,
        "collaborator_celine": True, "collaborator_vanessa": False,
    }
    resumo = resumo_demandas([
        _demanda("1", StatusDemandaEnum.CONCLUIDO, "Gabi"),
        _demanda("2", StatusDemandaEnum.CANCELADO),
    ])
    campos = campos_demandas_somados(cliente, resumo)

    assert campos["demands_completed"] == 3
    assert campos["demands_in_progress"] == 1
    assert campos["demands_not_started"] == 0
    assert campos["demands_cancelled"] == 1
    assert campos["collaborator_celine"] is True
    assert campos["collaborator_gabi"] is True
    assert campos["collaborator_darley"] is False
    assert campos["collaborator_vanessa"] is False


def test_resumo_licencas():
    hoje = date(2024, 6, 1)

    def licenca(vencimento, status):
        return RegistroLicenca(empresa="Alfa", vencimento=vencimento, status_calculado=status)

    resumo = resumo_licencas([
        licenca(date(2025, 1, 1), StatusLicencaEnum.VALIDA),
        licenca(date(2024, 6, 10), StatusLicencaEnum.PROXIMO_VENCIMENTO),
        licenca(date(2024, 1, 1), StatusLicencaEnum.FORA_VALIDADE),
        licenca(None, StatusLicencaEnum.FORA_VALIDADE),
    ], hoje=hoje)

    assert resumo == {
        "total": 4,
        "validas": 1,
        "proximo_vencimento": 1,
        "fora_validade": 2,
        "proxima_data_vencimento": "2024-06-10",
    }
    assert campos_licencas(resumo) == {
        "lic_validas_count": 1,
        "lic_proximo_venc_count": 1,
        "lic_fora_validade_count": 2,
        "lic_proxima_data_vencimento": "2024-06-10",
    }


def test_resumo_licencas_todas_vencidas():
    resumo = resumo_licencas(
        [RegistroLicenca(empresa="Alfa", vencimento=date(2020, 1, 1), status_calculado=StatusLicencaEnum.FORA_VALIDADE)],
        hoje=date(2024, 6, 1),
    )
    assert resumo["proxima_data_vencimento"] is None


def test_resumo_processos():
    processos = [RegistroProcesso(empresa="Alfa", status=s) for s in StatusProcessoEnum]
    processos.append(RegistroProcesso(empresa="Alfa", status=StatusProcessoEnum.NOTIFICADO))
    resumo = resumo_processos(processos)

    assert resumo["total"] == 7
    assert resumo["notificado"] == 2
    assert resumo["criticos"] == 3
    assert resumo["em_andamento"] == 4
    assert campos_processos(resumo) == {
        "proc_total_count": 7,
        "proc_deferido_count": 1,
        "proc_em_analise_orgao_count": 1,
        "proc_em_analise_ramos_count": 1,
        "proc_notificado_count": 2,
        "proc_reprovado_count": 1,
    }


def test_resumo_notificacoes():
    resumo = resumo_notificacoes([
        RegistroNotificacao(empresa="Alfa", numero_notificacao="1", status=StatusNotificacaoEnum.ATENDIDA),
        RegistroNotificacao(empresa="Alfa", numero_notificacao="2"),
    ])
    assert resumo == {"total": 2, "pendentes": 1, "atendidas": 1}


def test_resumo_itens_notificacao():
    resumo = resumo_itens_notificacao([
        RegistroItemNotificacao(empresa="Alfa", status=StatusItemNotificacaoEnum.ATENDIDO),
        RegistroItemNotificacao(empresa="Alfa", status=StatusItemNotificacaoEnum.VENCIDO),
        RegistroItemNotificacao(empresa="Alfa"),
    ])
    assert campos_itens_notificacao(resumo) == {
        "notif_item_atendido_count": 1,
        "notif_item_pendente_count": 1,
        "notif_item_vencido_count": 1,
    }


def test_condicionantes_a_fazer_contam_como_a_vencer():
    resumo = resumo_condicionantes([
        RegistroCondicionante(empresa="Alfa", status=s) for s in StatusCondicionanteEnum
    ])
    assert campos_condicionantes(resumo) == {
        "cond_atendidas_count": 1,
        "cond_a_vencer_count": 2,
        "cond_vencidas_count": 1,
    }


def test_resumir_despacha_pelo_tipo():
    resumo = resumir(TipoImportacaoEnum.NOTIFICACOES, [
        RegistroNotificacao(empresa="Alfa", numero_notificacao="1"),
    ])
    assert resumo["pendentes"] == 1
