from datetime import date
from types import SimpleNamespace

import pandas as pd
import pytest

from exceptions import PlanilhaInvalidaError
from models import (
    StatusCondicionanteEnum,
    StatusDemandaEnum,
    StatusItemNotificacaoEnum,
    StatusLicencaEnum,
    StatusNotificacaoEnum,
    StatusProcessoEnum,
    TipoImportacaoEnum,
)
from spreadsheet_parsers import (
    agrupar_por_empresa,
    calcular_status_licenca,
    converter_data,
    encontrar_coluna,
    normalizar_status_demanda,
    normalizar_status_processo,
    parse_condicionantes,
    parse_itens_notificacao,
    parse_notificacoes,
    parse_processos,
    processar_planilha,
)

HOJE = date(2024, 6, 1)


# === DEMANDAS ===

def test_demandas_do_excel(demandas_xlsx):
    demandas = processar_planilha(demandas_xlsx, "demandas.xlsx", TipoImportacaoEnum.DEMANDAS)

    assert [d.empresa for d in demandas] == [
        "Petróleo Ltda", "Petróleo Ltda", "Construtora Alfa Engenharia", "Zeta Nova",
    ]
    assert [d.status for d in demandas] == [
        StatusDemandaEnum.CONCLUIDO,
        StatusDemandaEnum.EM_EXECUCAO,
        StatusDemandaEnum.NAO_FEITO,
        StatusDemandaEnum.CANCELADO,
    ]
    assert demandas[0].data == date(2024, 3, 15)
    assert demandas[1].data == date(2024, 3, 15)
    assert demandas[2].data is None
    assert demandas[0].codigo == "D-1"
    assert demandas[3].codigo.startswith("IMP-")
    assert demandas[3].responsavel is None


def test_demandas_sem_coluna_obrigatoria(planilha):
    content = planilha([{"Empresa": "Petróleo Ltda", "Status": "Concluído"}])
    with pytest.raises(PlanilhaInvalidaError):
        processar_planilha(content, "demandas.xlsx", TipoImportacaoEnum.DEMANDAS)


def test_demandas_csv_latin1_com_ponto_e_virgula():
    content = "Empresa;Descrição;Status\nPetróleo Ltda;Renovar alvará;Concluído\n".encode("latin-1")
    demandas = processar_planilha(content, "demandas.csv", TipoImportacaoEnum.DEMANDAS)

    assert len(demandas) == 1
    assert demandas[0].empresa == "Petróleo Ltda"
    assert demandas[0].descricao == "Renovar alvará"
    assert demandas[0].status == StatusDemandaEnum.CONCLUIDO


@pytest.mark.parametrize("arquivo", ["dados.pdf", "dados.xls", "dados"])
def test_formato_nao_suportado(arquivo):
    with pytest.raises(PlanilhaInvalidaError):
        processar_planilha(b"qualquer", arquivo, TipoImportacaoEnum.DEMANDAS)


def test_excel_corrompido():
    with pytest.raises(PlanilhaInvalidaError):
        processar_planilha(b"isto nao e um xlsx", "dados.xlsx", TipoImportacaoEnum.DEMANDAS)


@pytest.mark.parametrize("valor, esperado", [
    ("Concluído", StatusDemandaEnum.CONCLUIDO),
    ("CONCLUIDA", StatusDemandaEnum.CONCLUIDO),
    ("Em execução", StatusDemandaEnum.EM_EXECUCAO),
    ("em andamento", StatusDemandaEnum.EM_EXECUCAO),
    ("Não Feito", StatusDemandaEnum.NAO_FEITO),
    ("Cancelamento pedido", StatusDemandaEnum.CANCELADO),
    ("Aguardando", StatusDemandaEnum.NAO_FEITO),
    (None, StatusDemandaEnum.NAO_FEITO),
])
def test_status_demanda(valor, esperado):
    assert normalizar_status_demanda(valor) == esperado


# === LICENÇAS ===

def test_licencas_usa_aba_data_e_filtra_inativas(planilha):
    content = planilha(
        [{"Resumo": "ignorar"}],
        aba="Resumo",
        extras={"Data": [
            {"Empresa": "Petróleo Ltda", "Ativo": "SIM", "Licença": "LO 12", "Vencimento": "10/06/2024"},
            {"Empresa": "Petróleo Ltda", "Ativo": "sim", "Licença": "LI 3", "Vencimento": "2025-01-01"},
            {"Empresa": "Construtora Alfa", "Ativo": "NÃO", "Licença": "LP 1", "Vencimento": "2025-01-01"},
            {"Empresa": "Construtora Alfa", "Ativo": None, "Licença": "LO 7", "Vencimento": "01/01/2024"},
            {"Empresa": "Mineração Beta Sul", "Ativo": None, "Licença": None, "Vencimento": None},
        ]},
    )
    licencas = processar_planilha(content, "licencas.xlsx", TipoImportacaoEnum.LICENCAS, hoje=HOJE)

    assert [l.licenca for l in licencas] == ["LO 12", "LI 3", "LO 7", None]
    assert [l.status_calculado for l in licencas] == [
        StatusLicencaEnum.PROXIMO_VENCIMENTO,
        StatusLicencaEnum.VALIDA,
        StatusLicencaEnum.FORA_VALIDADE,
        StatusLicencaEnum.FORA_VALIDADE,
    ]


def test_status_licenca_nos_limites():
    assert calcular_status_licenca(None, HOJE) == StatusLicencaEnum.FORA_VALIDADE
    assert calcular_status_licenca(date(2024, 5, 31), HOJE) == StatusLicencaEnum.FORA_VALIDADE
    assert calcular_status_licenca(HOJE, HOJE) == StatusLicencaEnum.PROXIMO_VENCIMENTO
    assert calcular_status_licenca(date(2024, 7, 1), HOJE) == StatusLicencaEnum.PROXIMO_VENCIMENTO
    assert calcular_status_licenca(date(2024, 7, 2), HOJE) == StatusLicencaEnum.VALIDA
    assert calcular_status_licenca(date(2024, 7, 2), HOJE, dias_aviso=60) == StatusLicencaEnum.PROXIMO_VENCIMENTO


# === PROCESSOS ===

def test_processos_status():
    df = pd.DataFrame([
        {"Empresa": "Alfa", "Nº do Processo": "P-1", "Status": "Deferido"},
        {"Empresa": "Alfa", "Nº do Processo": "P-2", "Status": "Em análise no órgão"},
        {"Empresa": "Alfa", "Nº do Processo": "P-3", "Status": "Em análise Ramos"},
        {"Empresa": "Beta", "Nº do Processo": "P-4", "Status": "Notificado"},
        {"Empresa": "Beta", "Nº do Processo": "P-5", "Status": "Indeferido"},
        {"Empresa": "Beta", "Nº do Processo": "P-6", "Status": "Arquivado"},
        {"Empresa": None, "Nº do Processo": "P-7", "Status": "Deferido"},
    ])
    processos = parse_processos(df)

    assert [p.status for p in processos] == [
        StatusProcessoEnum.DEFERIDO,
        StatusProcessoEnum.EM_ANALISE_ORGAO,
        StatusProcessoEnum.EM_ANALISE_RAMOS,
        StatusProcessoEnum.NOTIFICADO,
        StatusProcessoEnum.REPROVADO,
        StatusProcessoEnum.OUTROS,
    ]
    assert processos[5].status_original == "Arquivado"
    assert processos[0].numero_processo == "P-1"


@pytest.mark.parametrize("valor, esperado", [
    ("Deferido com ressalvas", StatusProcessoEnum.DEFERIDO),
    ("NOTIFICADO - aguardando resposta", StatusProcessoEnum.NOTIFICADO),
    ("Reprovado pelo órgão", StatusProcessoEnum.REPROVADO),
    ("Indeferido parcialmente", StatusProcessoEnum.REPROVADO),
    ("Em análise pelo órgão", StatusProcessoEnum.EM_ANALISE_ORGAO),
    ("", StatusProcessoEnum.OUTROS),
])
def test_status_processo_com_complemento(valor, esperado):
    assert normalizar_status_processo(valor) == esperado


# === NOTIFICAÇÕES E ITENS ===

def test_notificacoes_com_cabecalhos_parciais():
    df = pd.DataFrame([
        {"Empresa cliente": "Alfa", "Nº da Notificação": "N-1", "Status atual": "Atendida",
         "Data de recebimento": "05/02/2024"},
        {"Empresa cliente": "Alfa", "Nº da Notificação": None, "Status atual": "Pendente",
         "Data de recebimento": None},
        {"Empresa cliente": "Beta", "Nº da Notificação": "N-2", "Status atual": "Aguardando resposta",
         "Data de recebimento": None},
    ])
    notificacoes = parse_notificacoes(df)

    assert [n.numero_notificacao for n in notificacoes] == ["N-1", "N-2"]
    assert notificacoes[0].status == StatusNotificacaoEnum.ATENDIDA
    assert notificacoes[0].data_recebimento == date(2024, 2, 5)
    assert notificacoes[1].status == StatusNotificacaoEnum.PENDENTE


def test_itens_de_notificacao():
    df = pd.DataFrame([
        {"Empresa": "Alfa", "Notificação": "N-1", "Item": "Enviar laudo", "Prazo": "10/01/2024", "Status": "Atendido"},
        {"Empresa": "Alfa", "Notificação": "N-1", "Item": "Pagar taxa", "Prazo": None, "Status": "Vencido"},
        {"Empresa": "Beta", "Notificação": "N-2", "Item": "Protocolar", "Prazo": None, "Status": "A fazer"},
    ])
    itens = parse_itens_notificacao(df)

    assert [i.status for i in itens] == [
        StatusItemNotificacaoEnum.ATENDIDO,
        StatusItemNotificacaoEnum.VENCIDO,
        StatusItemNotificacaoEnum.PENDENTE,
    ]
    assert itens[0].descricao == "Enviar laudo"
    assert itens[0].numero_notificacao == "N-1"
    assert itens[0].vencimento == date(2024, 1, 10)


def test_itens_com_cabecalho_cliente_e_situacao():
    df = pd.DataFrame([
        {"Cliente": "Alfa", "Situação": "Atendido"},
        {"Cliente": "Beta", "Situação": "Vencido"},
    ])
    itens = parse_itens_notificacao(df)

    assert [(i.empresa, i.status) for i in itens] == [
        ("Alfa", StatusItemNotificacaoEnum.ATENDIDO),
        ("Beta", StatusItemNotificacaoEnum.VENCIDO),
    ]


def test_itens_sem_status_e_erro():
    with pytest.raises(PlanilhaInvalidaError):
        parse_itens_notificacao(pd.DataFrame([{"Empresa": "Alfa", "Item": "x"}]))


# === CONDICIONANTES ===

def test_condicionantes_status():
    df = pd.DataFrame([
        {"Empresa": "Alfa", "Nº item": "1", "Dias restantes": "12", "Status": "Atendida"},
        {"Empresa": "Alfa", "Nº item": "2", "Dias restantes": 3.0, "Status": "Concluído"},
        {"Empresa": "Alfa", "Nº item": "3", "Dias restantes": None, "Status": "Vencida"},
        {"Empresa": "Beta", "Nº item": "4", "Dias restantes": None, "Status": "A vencer"},
        {"Empresa": "Beta", "Nº item": "5", "Dias restantes": None, "Status": "A fazer"},
        {"Empresa": "Beta", "Nº item": "6", "Dias restantes": None, "Status": "Em aberto"},
        {"Empresa": "Beta", "Nº item": "7", "Dias restantes": None, "Status": None},
    ])
    condicionantes = parse_condicionantes(df)

    assert [c.status for c in condicionantes] == [
        StatusCondicionanteEnum.ATENDIDA,
        StatusCondicionanteEnum.ATENDIDA,
        StatusCondicionanteEnum.VENCIDA,
        StatusCondicionanteEnum.A_VENCER,
        StatusCondicionanteEnum.A_VENCER,
        StatusCondicionanteEnum.A_FAZER,
    ]
    assert condicionantes[0].dias_restantes == 12
    assert condicionantes[1].dias_restantes == 3
    assert condicionantes[3].status_original == "A vencer"


def test_condicionantes_com_cabecalhos_alternativos():
    df = pd.DataFrame([
        {"Cliente": "Alfa", "Numero": "7", "Validade": "31/12/2024", "Estado": "A vencer"},
    ])
    condicionantes = parse_condicionantes(df)

    assert len(condicionantes) == 1
    assert condicionantes[0].empresa == "Alfa"
    assert condicionantes[0].numero_item == "7"
    assert condicionantes[0].vencimento == date(2024, 12, 31)
    assert condicionantes[0].status == StatusCondicionanteEnum.A_VENCER


def test_dias_restantes_infinito_vira_vazio():
    conteudo = b"Empresa;Status;Dias restantes\nAlfa;A vencer;inf\n"
    condicionantes = processar_planilha(conteudo, "condicionantes.csv", TipoImportacaoEnum.CONDICIONANTES)

    assert len(condicionantes) == 1
    assert condicionantes[0].dias_restantes is None


# === AUXILIARES ===

@pytest.mark.parametrize("valor, esperado", [
    (date(2024, 1, 2), date(2024, 1, 2)),
    (pd.Timestamp("2024-01-02 10:30"), date(2024, 1, 2)),
    ("02/01/2024", date(2024, 1, 2)),
    ("2024-01-02", date(2024, 1, 2)),
    ("02-01-2024", date(2024, 1, 2)),
    (45366, date(2024, 3, 15)),
    ("45366", date(2024, 3, 15)),
    ("sem data", None),
    (None, None),
    (float("nan"), None),
    (0, None),
])
def test_converter_data(valor, esperado):
    assert converter_data(valor) == esperado


def test_encontrar_coluna():
    colunas = [" Empresa ", "Nº da Notificação", "Status"]
    assert encontrar_coluna(colunas, ["empresa"]) == " Empresa "
    assert encontrar_coluna(colunas, ["notificação"]) is None
    assert encontrar_coluna(colunas, ["notificação"], parcial=True) == "Nº da Notificação"


def test_agrupar_mantem_ordem_de_aparicao():
    registros = [
        SimpleNamespace(empresa="Beta"),
        SimpleNamespace(empresa="Alfa"),
        SimpleNamespace(empresa="Beta"),
    ]
    grupos = agrupar_por_empresa(registros)
    assert list(grupos) == ["Beta", "Alfa"]
    assert len(grupos["Beta"]) == 2
