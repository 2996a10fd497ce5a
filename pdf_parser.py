import hashlib
import io
import re
from typing import List, Optional, Tuple

import pdfplumber
from loguru import logger

from exceptions import PdfInvalidoError
from matching import normalizar_nome_cliente_pdf
from models import ClientePdfExtraido, ResultadoPdf

# Ordem das colunas numéricas depois do nome da empresa
METRICAS_PDF: List[Tuple[str, str]] = [
    ('cancelado', 'Cancelado'),
    ('em_execucao', 'Em Execução'),
    ('nao_feito', 'Não Feito'),
    ('concluido', 'Concluído'),
    ('total', 'Total'),
    ('licencas', 'Licenças'),
    ('protocolos', 'Protocolos'),
    ('projetos', 'Projetos'),
    ('taxas', 'Taxas'),
    ('contatos', 'Contatos'),
]
ROTULOS_METRICAS = dict(METRICAS_PDF)

LETRAS = r"A-ZÁÉÍÓÚÀÂÊÔÃÕÜÇ"
INICIO_LINHA = re.compile(rf"(?=\d{{4}}\s+\d{{1,2}}\s+[{LETRAS}])", re.IGNORECASE)
LINHA_TABELA = re.compile(
    rf"(\d{{4}})\s+(\d{{1,2}})\s+([{LETRAS}\s\-/\.]+?)(?:\s+(\d+))+",
    re.IGNORECASE,
)
EMPRESA_SOLTA = re.compile(
    rf"([{LETRAS}][{LETRAS}\s\-/\.]{{3,40}})\s+(?:\d+\s+){{3,}}",
    re.IGNORECASE,
)


def calcular_hash(file_content: bytes) -> str:
    """SHA-256 do arquivo, usado para barrar importações repetidas"""
    return hashlib.sha256(file_content).hexdigest()


def extrair_texto_pdf(file_content: bytes) -> List[str]:
    """Texto de cada página do PDF"""
    try:
        with pdfplumber.open(io.BytesIO(file_content)) as pdf:
            paginas = [pagina.extract_text() or "" for pagina in pdf.pages]
    except Exception as e:
        raise PdfInvalidoError(f"Erro ao ler PDF: {e}")

    logger.info(f"PDF lido com {len(paginas)} páginas")
    return paginas


def parse_linha_tabela(linha: str) -> Optional[Tuple[int, int, str, List[int]]]:
    """Ano, mês, empresa e os números que vêm depois do nome"""
    match = LINHA_TABELA.search(linha)
    if not match:
        return None

    empresa = match.group(3).strip()
    valores = [int(n) for n in re.findall(r"\d+", linha[match.end(3):])]
    return int(match.group(1)), int(match.group(2)), empresa, valores


def parse_texto_relatorio(paginas: List[str]) -> ResultadoPdf:
    clientes: List[ClientePdfExtraido] = []
    vistos = set()
    ano = mes = None

    for numero_pagina, texto_pagina in enumerate(paginas, start=1):
        for linha_pdf in texto_pagina.splitlines():
            for linha in INICIO_LINHA.split(linha_pdf):
                # Linha de totais não é cliente
                linha = linha.split('Totais:')[0]
                parsed = parse_linha_tabela(linha)
                if not parsed:
                    continue
                ano_linha, mes_linha, empresa, valores = parsed
                if len(empresa) <= 2:
                    continue

                ano = ano or ano_linha
                mes = mes or mes_linha

                normalizado = normalizar_nome_cliente_pdf(empresa)
                if not normalizado or normalizado in vistos:
                    continue
                vistos.add(normalizado)

                metricas = {
                    chave: valor
                    for (chave, _), valor in zip(METRICAS_PDF, valores)
                }
                clientes.append(ClientePdfExtraido(
                    nome_bruto=empresa,
                    nome_normalizado=normalizado,
                    ano=ano_linha,
                    mes=mes_linha,
                    pagina=numero_pagina,
                    metricas=metricas,
                ))

    texto_completo = "\n\n".join(paginas)
    if not clientes:
        logger.warning("⚠️ Nenhuma linha de tabela reconhecida, tentando padrão alternativo")
        for match in EMPRESA_SOLTA.finditer(texto_completo):
            empresa = match.group(1).strip()
            normalizado = normalizar_nome_cliente_pdf(empresa)
            if len(empresa) <= 3 or not normalizado or normalizado in vistos:
                continue
            vistos.add(normalizado)
            clientes.append(ClientePdfExtraido(nome_bruto=empresa, nome_normalizado=normalizado))

    logger.info(f"🔍 {len(clientes)} clientes encontrados no PDF (período {mes}/{ano})")
    return ResultadoPdf(
        clientes=clientes,
        periodo_ano=ano,
        periodo_mes=mes,
        paginas=len(paginas),
        tamanho_texto=len(texto_completo),
    )


def processar_pdf(file_content: bytes) -> ResultadoPdf:
    """Extrair clientes e métricas de um relatório mensal em PDF"""
    paginas = extrair_texto_pdf(file_content)
    if not any(p.strip() for p in paginas):
        raise PdfInvalidoError("PDF sem texto extraível")
    return parse_texto_relatorio(paginas)
