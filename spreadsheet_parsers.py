import io
import numbers
import time
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd
from loguru import logger

from exceptions import PlanilhaInvalidaError
from matching import normalizar_texto
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

EXTENSOES_ACEITAS = ('.xlsx', '.xlsm', '.csv')
NA_VALUES = ['', 'nan', 'NaN', 'null', 'NULL']
EPOCA_EXCEL = date(1899, 12, 30)

STATUS_DEMANDA_MAP = {
    'CONCLUIDO': StatusDemandaEnum.CONCLUIDO,
    'CONCLUÍDA': StatusDemandaEnum.CONCLUIDO,
    'CONCLUIDA': StatusDemandaEnum.CONCLUIDO,
    'EM_EXECUCAO': StatusDemandaEnum.EM_EXECUCAO,
    'EM EXECUÇÃO': StatusDemandaEnum.EM_EXECUCAO,
    'EM EXECUCAO': StatusDemandaEnum.EM_EXECUCAO,
    'NAO_FEITO': StatusDemandaEnum.NAO_FEITO,
    'NÃO FEITO': StatusDemandaEnum.NAO_FEITO,
    'NAO FEITO': StatusDemandaEnum.NAO_FEITO,
    'CANCELADO': StatusDemandaEnum.CANCELADO,
    'CANCELADA': StatusDemandaEnum.CANCELADO,
}

# Abas procuradas antes de cair na primeira
ABAS_PREFERIDAS = {
    TipoImportacaoEnum.LICENCAS: ['data', 'dados'],
    TipoImportacaoEnum.PROCESSOS: ['data'],
}

# === LEITURA ===

def ler_planilha(file_content: bytes, filename: str,
                 abas_preferidas: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """Ler CSV ou Excel em um DataFrame com cabeçalhos limpos"""
    nome = (filename or '').lower()
    if not nome.endswith(EXTENSOES_ACEITAS):
        raise PlanilhaInvalidaError(
            f"Formato não suportado: {filename}. Use Excel (.xlsx) ou CSV (.csv)"
        )

    if nome.endswith('.csv'):
        df = _ler_csv(file_content)
    else:
        df = _ler_excel(file_content, abas_preferidas or [])

    df.columns = [str(col).strip() for col in df.columns]
    df = df.dropna(how='all')
    logger.info(f"Arquivo {filename} lido com {len(df)} linhas e colunas: {list(df.columns)}")
    return df


def _ler_csv(file_content: bytes) -> pd.DataFrame:
    # Tentar diferentes codificações e separadores
    encodings = ['utf-8', 'latin-1', 'cp1252', 'iso-8859-1']
    separadores = [';', ',', '\t']
    df = None

    for encoding in encodings:
        try:
            content_str = file_content.decode(encoding)
        except UnicodeDecodeError:
            continue
        for sep in separadores:
            try:
                candidato = pd.read_csv(io.StringIO(content_str), sep=sep, na_values=NA_VALUES)
            except (pd.errors.ParserError, pd.errors.EmptyDataError):
                continue
            # Várias colunas indicam que o separador está certo
            if len(candidato.columns) > 1:
                logger.info(f"CSV lido com encoding {encoding} e separador '{sep}'")
                return candidato
            if df is None:
                df = candidato
        if df is not None:
            break

    if df is None:
        raise PlanilhaInvalidaError("Não foi possível ler o arquivo CSV com nenhuma codificação testada")
    return df


def _ler_excel(file_content: bytes, abas_preferidas: Sequence[str]) -> pd.DataFrame:
    try:
        planilha = pd.ExcelFile(io.BytesIO(file_content), engine='openpyxl')
    except Exception as e:
        raise PlanilhaInvalidaError(f"Erro ao ler arquivo Excel: {e}")

    aba = planilha.sheet_names[0]
    por_nome = {str(nome).strip().lower(): nome for nome in planilha.sheet_names}
    for preferida in abas_preferidas:
        if preferida in por_nome:
            aba = por_nome[preferida]
            break

    logger.info(f"Lendo aba '{aba}' de {planilha.sheet_names}")
    return planilha.parse(aba, na_values=NA_VALUES)

# === AUXILIARES ===

def encontrar_coluna(colunas: Sequence[str], nomes: Sequence[str], parcial: bool = False) -> Optional[str]:
    """Primeira coluna que casa com algum dos nomes, sem diferenciar maiúsculas"""
    limpas = [(col, str(col).strip().lower()) for col in colunas]
    for nome in nomes:
        alvo = nome.strip().lower()
        for original, limpa in limpas:
            if limpa == alvo or (parcial and alvo in limpa):
                return original
    return None


def _exigir_colunas(df: pd.DataFrame, obrigatorias: Dict[str, Sequence[str]],
                    parcial: bool = False) -> Dict[str, str]:
    encontradas = {}
    faltando = []
    for chave, nomes in obrigatorias.items():
        coluna = encontrar_coluna(df.columns, nomes, parcial)
        if coluna is None:
            faltando.append(nomes[0])
        else:
            encontradas[chave] = coluna

    if faltando:
        logger.warning(f"Colunas obrigatórias não encontradas: {faltando}")
        logger.info(f"Colunas disponíveis: {list(df.columns)}")
        raise PlanilhaInvalidaError(f"Colunas obrigatórias não encontradas: {faltando}")
    return encontradas


def _vazio(valor: Any) -> bool:
    if valor is None:
        return True
    try:
        return bool(pd.isna(valor))
    except (TypeError, ValueError):
        return False


def texto(valor: Any) -> str:
    """Valor de célula como texto limpo"""
    if _vazio(valor):
        return ''
    if isinstance(valor, float) and valor.is_integer():
        return str(int(valor))
    if isinstance(valor, (pd.Timestamp, datetime)):
        return valor.date().isoformat()
    return str(valor).strip()


def _opcional(valor: Any) -> Optional[str]:
    return texto(valor) or None


def converter_data(valor: Any) -> Optional[date]:
    """Datas nativas, seriais do Excel, DD/MM/AAAA ou AAAA-MM-DD"""
    if _vazio(valor):
        return None
    if isinstance(valor, (pd.Timestamp, datetime)):
        return valor.date()
    if isinstance(valor, date):
        return valor
    if isinstance(valor, numbers.Real) and not isinstance(valor, bool):
        return _serial_excel(valor)

    valor_str = str(valor).strip()
    for formato in ('%d/%m/%Y', '%Y-%m-%d', '%d/%m/%y', '%d-%m-%Y'):
        try:
            return datetime.strptime(valor_str, formato).date()
        except ValueError:
            continue
    try:
        return _serial_excel(float(valor_str))
    except ValueError:
        logger.debug(f"Data inválida ignorada: {valor}")
        return None


def _serial_excel(serial: float) -> Optional[date]:
    if serial <= 0:
        return None
    try:
        return EPOCA_EXCEL + timedelta(days=int(serial))
    except OverflowError:
        return None


def _inteiro(valor: Any) -> Optional[int]:
    if _vazio(valor):
        return None
    try:
        return int(float(str(valor).replace(',', '.')))
    except (ValueError, OverflowError):
        return None


def _celula(row: pd.Series, coluna: Optional[str]) -> Any:
    return row.get(coluna) if coluna else None

# === STATUS ===

def normalizar_status_demanda(valor: Any) -> StatusDemandaEnum:
    bruto = texto(valor)
    if not bruto:
        return StatusDemandaEnum.NAO_FEITO

    normalizado = normalizar_texto(bruto)
    for chave, status in STATUS_DEMANDA_MAP.items():
        if normalizar_texto(chave) == normalizado:
            return status

    upper = normalizado.upper().replace(' ', '_')
    if 'CONCLU' in upper:
        return StatusDemandaEnum.CONCLUIDO
    if 'EXECU' in upper or 'ANDAMENTO' in upper:
        return StatusDemandaEnum.EM_EXECUCAO
    if 'CANCEL' in upper:
        return StatusDemandaEnum.CANCELADO
    return StatusDemandaEnum.NAO_FEITO


def calcular_status_licenca(vencimento: Optional[date], hoje: Optional[date] = None,
                            dias_aviso: int = 30) -> StatusLicencaEnum:
    hoje = hoje or date.today()
    if vencimento is None or vencimento < hoje:
        return StatusLicencaEnum.FORA_VALIDADE
    if vencimento <= hoje + timedelta(days=dias_aviso):
        return StatusLicencaEnum.PROXIMO_VENCIMENTO
    return StatusLicencaEnum.VALIDA


def normalizar_status_processo(valor: Any) -> StatusProcessoEnum:
    status = normalizar_texto(texto(valor)).upper()
    # INDEFERIDO contém DEFERIDO
    if 'INDEFERIDO' in status or 'REPROVADO' in status:
        return StatusProcessoEnum.REPROVADO
    if 'DEFERIDO' in status:
        return StatusProcessoEnum.DEFERIDO
    if 'ANALISE' in status and 'ORGAO' in status:
        return StatusProcessoEnum.EM_ANALISE_ORGAO
    if 'ANALISE' in status and 'RAMOS' in status:
        return StatusProcessoEnum.EM_ANALISE_RAMOS
    if 'NOTIFICADO' in status:
        return StatusProcessoEnum.NOTIFICADO
    return StatusProcessoEnum.OUTROS


def normalizar_status_notificacao(valor: Any) -> StatusNotificacaoEnum:
    if 'ATEND' in texto(valor).upper():
        return StatusNotificacaoEnum.ATENDIDA
    return StatusNotificacaoEnum.PENDENTE


def normalizar_status_item_notificacao(valor: Any) -> StatusItemNotificacaoEnum:
    status = texto(valor).upper()
    if 'ATEND' in status:
        return StatusItemNotificacaoEnum.ATENDIDO
    if 'VENC' in status:
        return StatusItemNotificacaoEnum.VENCIDO
    return StatusItemNotificacaoEnum.PENDENTE


def calcular_status_condicionante(valor: Any) -> StatusCondicionanteEnum:
    status = normalizar_texto(texto(valor))
    if 'atendida' in status or 'conclu' in status:
        return StatusCondicionanteEnum.ATENDIDA
    if 'vencida' in status:
        return StatusCondicionanteEnum.VENCIDA
    if 'vencer' in status or 'fazer' in status:
        return StatusCondicionanteEnum.A_VENCER
    return StatusCondicionanteEnum.A_FAZER

# === PARSERS ===

def parse_demandas(df: pd.DataFrame) -> List[RegistroDemanda]:
    """Extrair demandas; linhas sem empresa ou descrição são descartadas"""
    obrigatorias = _exigir_colunas(df, {
        'empresa': ['Empresa'],
        'descricao': ['Descrição', 'Descricao'],
    })
    colunas = df.columns
    col_codigo = encontrar_coluna(colunas, ['Código', 'Codigo'])
    col_data = encontrar_coluna(colunas, ['Data'])
    col_responsavel = encontrar_coluna(colunas, ['Responsável', 'Responsavel'])
    col_status = encontrar_coluna(colunas, ['Status'])
    col_topico = encontrar_coluna(colunas, ['Tópico', 'Topico'])
    col_subtopico = encontrar_coluna(colunas, ['Subtópico', 'Subtopico'])
    col_plano = encontrar_coluna(colunas, ['Plano'])
    col_comentario = encontrar_coluna(colunas, ['Comentário', 'Comentario'])
    col_origem = encontrar_coluna(colunas, ['Origem'])

    prefixo = f"IMP-{int(time.time() * 1000)}"
    demandas = []
    for index, row in df.iterrows():
        empresa = texto(row.get(obrigatorias['empresa']))
        descricao = texto(row.get(obrigatorias['descricao']))
        if not empresa or not descricao:
            continue

        demandas.append(RegistroDemanda(
            codigo=texto(_celula(row, col_codigo)) or f"{prefixo}-{len(demandas)}",
            data=converter_data(_celula(row, col_data)),
            empresa=empresa,
            descricao=descricao,
            responsavel=_opcional(_celula(row, col_responsavel)),
            status=normalizar_status_demanda(_celula(row, col_status)),
            topico=_opcional(_celula(row, col_topico)),
            subtopico=_opcional(_celula(row, col_subtopico)),
            plano=_opcional(_celula(row, col_plano)),
            comentario=_opcional(_celula(row, col_comentario)),
            origem=_opcional(_celula(row, col_origem)),
        ))

    logger.info(f"Demandas extraídas: {len(demandas)} de {len(df)} linhas")
    return demandas


def parse_licencas(df: pd.DataFrame, hoje: Optional[date] = None,
                   dias_aviso: int = 30) -> List[RegistroLicenca]:
    obrigatorias = _exigir_colunas(df, {'empresa': ['Empresa', 'Cliente']})
    colunas = df.columns
    col_ativo = encontrar_coluna(colunas, ['Ativo'])
    col_tipo = encontrar_coluna(colunas, ['Tipo de Licença', 'Tipo de Licenca', 'Tipo'])
    col_licenca = encontrar_coluna(colunas, ['Licença', 'Licenca'])
    col_processo = encontrar_coluna(colunas, ['Nº Processo', 'N° Processo', 'Numero Processo', 'Processo'])
    col_emissao = encontrar_coluna(colunas, ['Data de Emissão', 'Data de Emissao', 'Emissão'])
    col_vencimento = encontrar_coluna(colunas, ['Vencimento', 'Validade', 'Data de Vencimento'])
    col_status = encontrar_coluna(colunas, ['Status', 'Situação', 'Situacao'])

    licencas = []
    for index, row in df.iterrows():
        empresa = texto(row.get(obrigatorias['empresa']))
        if not empresa:
            continue

        ativo = texto(_celula(row, col_ativo)).upper()
        if ativo and ativo != 'SIM':
            continue

        vencimento = converter_data(_celula(row, col_vencimento))
        licencas.append(RegistroLicenca(
            empresa=empresa,
            tipo_licenca=_opcional(_celula(row, col_tipo)),
            licenca=_opcional(_celula(row, col_licenca)),
            num_processo=_opcional(_celula(row, col_processo)),
            data_emissao=converter_data(_celula(row, col_emissao)),
            vencimento=vencimento,
            status_excel=_opcional(_celula(row, col_status)),
            status_calculado=calcular_status_licenca(vencimento, hoje, dias_aviso),
        ))

    logger.info(f"Licenças extraídas: {len(licencas)} de {len(df)} linhas")
    return licencas


def parse_processos(df: pd.DataFrame) -> List[RegistroProcesso]:
    obrigatorias = _exigir_colunas(df, {'empresa': ['Empresa']})
    colunas = df.columns
    col_tipo = encontrar_coluna(colunas, ['Tipo de Processo', 'Tipo'])
    col_nome = encontrar_coluna(colunas, ['Nome'])
    col_numero = encontrar_coluna(colunas, ['Nº do Processo', 'N° do Processo', 'Nº Processo', 'Numero do Processo'])
    col_protocolo = encontrar_coluna(colunas, ['Data do Protocolo', 'Data Protocolo', 'Protocolo'])
    col_status = encontrar_coluna(colunas, ['Status'])

    processos = []
    for index, row in df.iterrows():
        empresa = texto(row.get(obrigatorias['empresa']))
        if not empresa:
            continue

        status_bruto = _celula(row, col_status)
        processos.append(RegistroProcesso(
            empresa=empresa,
            tipo_processo=_opcional(_celula(row, col_tipo)),
            nome=_opcional(_celula(row, col_nome)),
            numero_processo=_opcional(_celula(row, col_numero)),
            data_protocolo=converter_data(_celula(row, col_protocolo)),
            status=normalizar_status_processo(status_bruto),
            status_original=_opcional(status_bruto),
        ))

    logger.info(f"Processos extraídos: {len(processos)} de {len(df)} linhas")
    return processos


def parse_notificacoes(df: pd.DataFrame) -> List[RegistroNotificacao]:
    obrigatorias = _exigir_colunas(df, {
        'empresa': ['empresa'],
        'numero': ['nº da notificação', 'n° da notificação', 'nº da notificacao', 'notificação', 'notificacao'],
    }, parcial=True)
    colunas = df.columns
    col_processo = encontrar_coluna(colunas, ['processo'], parcial=True)
    col_descricao = encontrar_coluna(colunas, ['descrição', 'descricao'], parcial=True)
    col_recebimento = encontrar_coluna(colunas, ['data de recebimento', 'recebimento'], parcial=True)
    col_status = encontrar_coluna(colunas, ['status'], parcial=True)

    notificacoes = []
    for index, row in df.iterrows():
        empresa = texto(row.get(obrigatorias['empresa']))
        numero = texto(row.get(obrigatorias['numero']))
        if not empresa or not numero:
            continue

        notificacoes.append(RegistroNotificacao(
            empresa=empresa,
            numero_processo=_opcional(_celula(row, col_processo)),
            numero_notificacao=numero,
            descricao=_opcional(_celula(row, col_descricao)),
            data_recebimento=converter_data(_celula(row, col_recebimento)),
            status=normalizar_status_notificacao(_celula(row, col_status)),
        ))

    logger.info(f"Notificações extraídas: {len(notificacoes)} de {len(df)} linhas")
    return notificacoes


def parse_itens_notificacao(df: pd.DataFrame) -> List[RegistroItemNotificacao]:
    obrigatorias = _exigir_colunas(df, {
        'empresa': ['empresa', 'cliente'],
        'status': ['status', 'situação', 'situacao', 'estado'],
    }, parcial=True)
    colunas = df.columns
    col_notificacao = encontrar_coluna(colunas, ['notificação', 'notificacao'], parcial=True)
    col_descricao = encontrar_coluna(colunas, ['descrição', 'descricao', 'item'], parcial=True)
    col_vencimento = encontrar_coluna(colunas, ['vencimento', 'prazo'], parcial=True)

    itens = []
    for index, row in df.iterrows():
        empresa = texto(row.get(obrigatorias['empresa']))
        if not empresa:
            continue

        itens.append(RegistroItemNotificacao(
            empresa=empresa,
            numero_notificacao=_opcional(_celula(row, col_notificacao)),
            descricao=_opcional(_celula(row, col_descricao)),
            vencimento=converter_data(_celula(row, col_vencimento)),
            status=normalizar_status_item_notificacao(row.get(obrigatorias['status'])),
        ))

    logger.info(f"Itens de notificação extraídos: {len(itens)} de {len(df)} linhas")
    return itens


def parse_condicionantes(df: pd.DataFrame) -> List[RegistroCondicionante]:
    obrigatorias = _exigir_colunas(df, {
        'empresa': ['Empresa', 'Cliente'],
        'status': ['Status', 'Situação', 'Situacao', 'Estado'],
    })
    colunas = df.columns
    col_licenca = encontrar_coluna(colunas, ['Licença', 'Licenca'])
    col_item = encontrar_coluna(colunas, ['Nº item', 'N° item', 'Num item', 'NumItem', 'Numero', 'Número', 'Item'])
    col_descricao = encontrar_coluna(colunas, ['Descrição', 'Descricao'])
    col_protocolo = encontrar_coluna(colunas, ['Protocolo'])
    col_vencimento = encontrar_coluna(colunas, ['Vencimento', 'Data Vencimento', 'Validade'])
    col_dias = encontrar_coluna(colunas, ['Dias restantes', 'DiasRestantes'])
    col_atendimento = encontrar_coluna(colunas, ['Data de atendimento', 'Data Atendimento', 'DataAtendimento'])

    condicionantes = []
    for index, row in df.iterrows():
        empresa = texto(row.get(obrigatorias['empresa']))
        status_bruto = texto(row.get(obrigatorias['status']))
        if not empresa or not status_bruto:
            continue

        condicionantes.append(RegistroCondicionante(
            empresa=empresa,
            licenca=_opcional(_celula(row, col_licenca)),
            numero_item=_opcional(_celula(row, col_item)),
            descricao=_opcional(_celula(row, col_descricao)),
            protocolo=_opcional(_celula(row, col_protocolo)),
            vencimento=converter_data(_celula(row, col_vencimento)),
            dias_restantes=_inteiro(_celula(row, col_dias)),
            data_atendimento=converter_data(_celula(row, col_atendimento)),
            status_original=status_bruto,
            status=calcular_status_condicionante(status_bruto),
        ))

    logger.info(f"Condicionantes extraídas: {len(condicionantes)} de {len(df)} linhas")
    return condicionantes


PARSERS = {
    TipoImportacaoEnum.DEMANDAS: parse_demandas,
    TipoImportacaoEnum.LICENCAS: parse_licencas,
    TipoImportacaoEnum.PROCESSOS: parse_processos,
    TipoImportacaoEnum.NOTIFICACOES: parse_notificacoes,
    TipoImportacaoEnum.ITENS_NOTIFICACAO: parse_itens_notificacao,
    TipoImportacaoEnum.CONDICIONANTES: parse_condicionantes,
}


def processar_planilha(file_content: bytes, filename: str, tipo: TipoImportacaoEnum,
                       hoje: Optional[date] = None, dias_aviso: int = 30) -> list:
    """Processar arquivo CSV ou Excel e extrair os registros do tipo pedido"""
    logger.info(f"Iniciando processamento de {filename} ({tipo.value})")
    df = ler_planilha(file_content, filename, ABAS_PREFERIDAS.get(tipo))

    if tipo == TipoImportacaoEnum.LICENCAS:
        return parse_licencas(df, hoje=hoje, dias_aviso=dias_aviso)
    return PARSERS[tipo](df)


def agrupar_por_empresa(registros: list) -> Dict[str, list]:
    """Agrupa mantendo a ordem em que cada empresa aparece no arquivo"""
    grupos: Dict[str, list] = {}
    for registro in registros:
        grupos.setdefault(registro.empresa, []).append(registro)
    return grupos
