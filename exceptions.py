class ImportacaoError(Exception):
    """Erro base das importações"""
    status_code = 400


class PlanilhaInvalidaError(ImportacaoError):
    """Planilha sem as colunas obrigatórias ou ilegível"""


class PdfInvalidoError(ImportacaoError):
    """PDF sem texto extraível ou sem clientes reconhecidos"""


class SessaoNaoEncontradaError(ImportacaoError):
    status_code = 404


class EmpresaNaoEncontradaError(ImportacaoError):
    status_code = 404


class ClienteNaoEncontradoError(ImportacaoError):
    status_code = 404


class TransicaoInvalidaError(ImportacaoError):
    """Ação não permitida na etapa atual da importação"""
    status_code = 409


class ImportacaoDuplicadaError(ImportacaoError):
    """Arquivo com o mesmo hash já foi importado"""
    status_code = 409


class BancoIndisponivelError(ImportacaoError):
    status_code = 503


class ImportacaoNaoEncontradaError(ImportacaoError):
    status_code = 404
