# models.py
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime, date
from enum import Enum

# === ENUMS ===
class TipoImportacaoEnum(str, Enum):
    DEMANDAS = "demandas"
    LICENCAS = "licencas"
    PROCESSOS = "processos"
    NOTIFICACOES = "notificacoes"
    ITENS_NOTIFICACAO = "itens-notificacao"
    CONDICIONANTES = "condicionantes"

class MatchTypeEnum(str, Enum):
    EXACT = "exact"
    SUGGESTED = "suggested"
    NONE = "none"

class EtapaImportacaoEnum(str, Enum):
    UPLOAD = "upload"
    MATCH = "match"
    PREVIEW = "preview"
    IMPORTING = "importing"
    COMPLETE = "complete"
    ERROR = "error"

class ModoImportacaoEnum(str, Enum):
    QUICK = "quick"
    COMPLETE = "complete"

class AcaoDuplicadoEnum(str, Enum):
    SKIP = "skip"
    UPDATE = "update"

class StatusDemandaEnum(str, Enum):
    CONCLUIDO = "CONCLUIDO"
    EM_EXECUCAO = "EM_EXECUCAO"
    NAO_FEITO = "NAO_FEITO"
    CANCELADO = "CANCELADO"

class StatusLicencaEnum(str, Enum):
    VALIDA = "VALIDA"
    PROXIMO_VENCIMENTO = "PROXIMO_VENCIMENTO"
    FORA_VALIDADE = "FORA_VALIDADE"

class StatusProcessoEnum(str, Enum):
    DEFERIDO = "DEFERIDO"
    EM_ANALISE_ORGAO = "EM_ANALISE_ORGAO"
    EM_ANALISE_RAMOS = "EM_ANALISE_RAMOS"
    NOTIFICADO = "NOTIFICADO"
    REPROVADO = "REPROVADO"
    OUTROS = "OUTROS"

class StatusNotificacaoEnum(str, Enum):
    PENDENTE = "PENDENTE"
    ATENDIDA = "ATENDIDA"

class StatusItemNotificacaoEnum(str, Enum):
    PENDENTE = "PENDENTE"
    ATENDIDO = "ATENDIDO"
    VENCIDO = "VENCIDO"

class StatusCondicionanteEnum(str, Enum):
    A_FAZER = "A_FAZER"
    A_VENCER = "A_VENCER"
    ATENDIDA = "ATENDIDA"
    VENCIDA = "VENCIDA"

class StatusPdfImportEnum(str, Enum):
    UPLOADED = "uploaded"
    PARSING = "parsing"
    READY = "ready"
    IMPORTED = "imported"
    ERROR = "error"

class StatusClientePdfEnum(str, Enum):
    AUTO = "auto"
    LINKED = "linked"
    PENDING = "pending"
    UNMATCHED = "unmatched"

# === MODELOS BASE ===
class Cliente(BaseModel):
    id: str
    name: str
    initials: Optional[str] = None

# === REGISTROS DAS PLANILHAS ===
class RegistroDemanda(BaseModel):
    codigo: str
    data: Optional[date] = None
    empresa: str
    descricao: str
    responsavel: Optional[str] = None
    status: StatusDemandaEnum = StatusDemandaEnum.NAO_FEITO
    topico: Optional[str] = None
    subtopico: Optional[str] = None
    plano: Optional[str] = None
    comentario: Optional[str] = None
    origem: Optional[str] = None

class RegistroLicenca(BaseModel):
    empresa: str
    tipo_licenca: Optional[str] = None
    licenca: Optional[str] = None
    num_processo: Optional[str] = None
    data_emissao: Optional[date] = None
    vencimento: Optional[date] = None
    status_excel: Optional[str] = None
    status_calculado: StatusLicencaEnum

class RegistroProcesso(BaseModel):
    empresa: str
    tipo_processo: Optional[str] = None
    nome: Optional[str] = None
    numero_processo: Optional[str] = None
    data_protocolo: Optional[date] = None
    status: StatusProcessoEnum = StatusProcessoEnum.OUTROS
    status_original: Optional[str] = None

class RegistroNotificacao(BaseModel):
    empresa: str
    numero_processo: Optional[str] = None
    numero_notificacao: str
    descricao: Optional[str] = None
    data_recebimento: Optional[date] = None
    status: StatusNotificacaoEnum = StatusNotificacaoEnum.PENDENTE

class RegistroItemNotificacao(BaseModel):
    empresa: str
    numero_notificacao: Optional[str] = None
    descricao: Optional[str] = None
    vencimento: Optional[date] = None
    status: StatusItemNotificacaoEnum = StatusItemNotificacaoEnum.PENDENTE

class RegistroCondicionante(BaseModel):
    empresa: str
    licenca: Optional[str] = None
    numero_item: Optional[str] = None
    descricao: Optional[str] = None
    protocolo: Optional[str] = None
    vencimento: Optional[date] = None
    dias_restantes: Optional[int] = None
    data_atendimento: Optional[date] = None
    status_original: Optional[str] = None
    status: StatusCondicionanteEnum = StatusCondicionanteEnum.A_FAZER

# === CONCILIAÇÃO ===
class SugestaoCliente(BaseModel):
    client_id: str
    client_name: str
    score: float

class ResultadoMatch(BaseModel):
    empresa_excel: str
    match_type: MatchTypeEnum = MatchTypeEnum.NONE
    client_id: Optional[str] = None
    client_name: Optional[str] = None
    confidence: float = 0.0
    suggestions: List[SugestaoCliente] = []
    selected: bool = False
    ignored: bool = False
    create_new: bool = False
    registros: List[Dict[str, Any]] = []
    resumo: Dict[str, Any] = {}

class RelatorioImportacao(BaseModel):
    empresas_atualizadas: int = 0
    clientes_criados: int = 0
    registros_inseridos: int = 0
    registros_atualizados: int = 0
    registros_ignorados: int = 0
    erros: int = 0
    mensagens: List[str] = []

class SessaoImportacao(BaseModel):
    id: str
    tipo: TipoImportacaoEnum
    arquivo: str
    etapa: EtapaImportacaoEnum = EtapaImportacaoEnum.UPLOAD
    modo: ModoImportacaoEnum = ModoImportacaoEnum.QUICK
    acao_duplicado: AcaoDuplicadoEnum = AcaoDuplicadoEnum.SKIP
    total_linhas: int = 0
    resultados: List[ResultadoMatch] = []
    relatorio: Optional[RelatorioImportacao] = None
    erro: Optional[str] = None
    criado_em: datetime = Field(default_factory=datetime.now)
    atualizado_em: datetime = Field(default_factory=datetime.now)

class EstatisticasSessao(BaseModel):
    empresas: int
    linhas: int
    exatas: int
    sugeridas: int
    sem_match: int
    ignoradas: int
    novas: int
    selecionadas: int

# === COLABORADORES ===
class ColaboradorMatch(BaseModel):
    nome_excel: str
    match_type: MatchTypeEnum = MatchTypeEnum.NONE
    collaborator_id: Optional[str] = None
    collaborator_name: Optional[str] = None
    confidence: float = 0.0
    suggestions: List[SugestaoCliente] = []
    selected: bool = False

# === PDF ===
class ClientePdfExtraido(BaseModel):
    nome_bruto: str
    nome_normalizado: str
    ano: Optional[int] = None
    mes: Optional[int] = None
    pagina: int = 1
    metricas: Dict[str, int] = {}

class ResultadoPdf(BaseModel):
    clientes: List[ClientePdfExtraido] = []
    periodo_ano: Optional[int] = None
    periodo_mes: Optional[int] = None
    paginas: int = 0
    tamanho_texto: int = 0

class ClientePdfCasado(BaseModel):
    cliente: ClientePdfExtraido
    match_status: StatusClientePdfEnum
    matched_client_id: Optional[str] = None
    matched_client_name: Optional[str] = None
    match_score: float = 0.0
    suggestions: List[SugestaoCliente] = []

# === REQUISIÇÕES DA API ===
class VincularRequest(BaseModel):
    empresa: str
    client_id: str

class EmpresaRequest(BaseModel):
    empresa: str

class ConfirmarRequest(BaseModel):
    modo: ModoImportacaoEnum = ModoImportacaoEnum.QUICK
    acao_duplicado: AcaoDuplicadoEnum = AcaoDuplicadoEnum.SKIP

class ColaboradoresRequest(BaseModel):
    colaboradores: List[Cliente]

class PdfVincularRequest(BaseModel):
    detected_id: str
    client_id: str
    criar_alias: bool = True

class PdfConcluirRequest(BaseModel):
    incluir_vinculados: bool = False

class SimilaridadeRequest(BaseModel):
    nome: str
    perfil: str = "demandas"
    clientes: Optional[List[Cliente]] = None
