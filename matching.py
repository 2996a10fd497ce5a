"""
Normalização de nomes e casamento de empresas com os clientes cadastrados.

Cada importador tem sua própria fórmula e seus próprios limites; eles ficam
agrupados em perfis (PERFIS) em vez de unificados, porque as planilhas de
origem e os resultados esperados pelos usuários são diferentes.
"""
import re
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from rapidfuzz.distance import Levenshtein
from unidecode import unidecode

from models import (
    Cliente,
    ColaboradorMatch,
    MatchTypeEnum,
    ResultadoMatch,
    SugestaoCliente,
)

COLABORADORES_CONHECIDOS = ("celine", "gabi", "darley", "vanessa")

SUFIXOS_EMPRESA = re.compile(
    r"\b(LTDA|ME|EPP|EIRELI|S/A|SA|S\.A\.|INDUSTRIA|COMERCIO|IND|COM)\b",
    re.IGNORECASE,
)

# === NORMALIZAÇÃO ===

def normalizar_texto(texto: Optional[str]) -> str:
    """Minúsculas, sem acentos e com espaços colapsados"""
    if not texto:
        return ""
    texto = unidecode(str(texto)).lower().strip()
    return re.sub(r"\s+", " ", texto)


def normalizar_nome_empresa(nome: Optional[str], manter_espacos: bool = True) -> str:
    """Minúsculas, sem acentos e só com letras e números"""
    if not nome:
        return ""
    nome = unidecode(str(nome)).lower()
    padrao = r"[^a-z0-9\s]" if manter_espacos else r"[^a-z0-9]"
    return re.sub(padrao, "", nome).strip()


def normalizar_nome_cliente_pdf(nome: Optional[str]) -> str:
    """Forma canônica dos nomes lidos dos relatórios em PDF"""
    if not nome:
        return ""
    nome = unidecode(str(nome)).upper()
    nome = re.sub(r"\s*[-/]\s*", " ", nome)
    nome = SUFIXOS_EMPRESA.sub("", nome)
    nome = re.sub(r"[^\w\s]", "", nome)
    return re.sub(r"\s+", " ", nome).strip()

# === FÓRMULAS DE SIMILARIDADE ===
# Todas recebem nomes já normalizados pelo normalizador do perfil.

def _igual_ou_contido(a: str, b: str) -> Optional[float]:
    if a == b:
        return 1.0
    if a in b or b in a:
        return 0.8
    return None


def similaridade_jaccard(a: str, b: str) -> float:
    """Sobreposição de palavras: |A ∩ B| / |A ∪ B|"""
    if not a or not b:
        return 1.0 if a == b else 0.0
    score = _igual_ou_contido(a, b)
    if score is not None:
        return score
    palavras_a = set(a.split())
    palavras_b = set(b.split())
    uniao = palavras_a | palavras_b
    if not uniao:
        return 0.0
    return len(palavras_a & palavras_b) / len(uniao)


def similaridade_palavras(a: str, b: str) -> float:
    """Proporção de palavras (> 2 letras) contidas umas nas outras"""
    if not a or not b:
        return 1.0 if a == b else 0.0
    score = _igual_ou_contido(a, b)
    if score is not None:
        return score
    palavras_a = [p for p in a.split() if len(p) > 2]
    palavras_b = [p for p in b.split() if len(p) > 2]
    if not palavras_a or not palavras_b:
        return 0.0
    coincidentes = sum(
        1 for p in palavras_a if any(p in q or q in p for q in palavras_b)
    )
    return round(coincidentes / max(len(palavras_a), len(palavras_b)) * 100) / 100


def similaridade_caracteres(a: str, b: str) -> float:
    """
    Caracteres da string menor encontrados na maior, divididos pelo tamanho
    da maior. Com tamanhos iguais, `b` é tratada como a maior, então o
    resultado não é simétrico: ("aab", "abc") = 1.0 e ("abc", "aab") = 2/3.
    """
    if not a or not b:
        return 1.0 if a == b else 0.0
    score = _igual_ou_contido(a, b)
    if score is not None:
        return score
    maior, menor = (a, b) if len(a) > len(b) else (b, a)
    comuns = sum(1 for c in menor if c in maior)
    return comuns / len(maior)


def similaridade_levenshtein(a: str, b: str) -> float:
    """1 - distância / maior tamanho"""
    if not a and not b:
        return 1.0
    return Levenshtein.normalized_similarity(a, b)


def similaridade_colaborador(a: str, b: str) -> float:
    if not a or not b:
        return 1.0 if a == b else 0.0
    score = _igual_ou_contido(a, b)
    if score is not None:
        return score
    palavras_a = a.split()
    palavras_b = b.split()
    coincidentes = sum(
        1 for p in palavras_a if any(p == q or p in q or q in p for q in palavras_b)
    )
    return coincidentes / max(len(palavras_a), len(palavras_b))

# === PERFIS POR IMPORTADOR ===

@dataclass(frozen=True)
class PerfilMatching:
    nome: str
    normalizar: Callable[[str], str]
    similaridade: Callable[[str, str], float]
    limite_sugestao: float
    limite_preselecao: float
    max_sugestoes: int
    sugestao_inclusiva: bool = True
    preselecao_inclusiva: bool = True

    def aceita_sugestao(self, score: float) -> bool:
        if self.sugestao_inclusiva:
            return score >= self.limite_sugestao
        return score > self.limite_sugestao

    def aceita_preselecao(self, score: float) -> bool:
        if self.preselecao_inclusiva:
            return score >= self.limite_preselecao
        return score > self.limite_preselecao


def _sem_espacos(nome: str) -> str:
    return normalizar_nome_empresa(nome, manter_espacos=False)


PERFIS: Dict[str, PerfilMatching] = {
    "demandas": PerfilMatching(
        "demandas", normalizar_texto, similaridade_jaccard,
        limite_sugestao=0.3, sugestao_inclusiva=False,
        limite_preselecao=0.6, max_sugestoes=5,
    ),
    "licencas": PerfilMatching(
        "licencas", normalizar_texto, similaridade_jaccard,
        limite_sugestao=0.5, limite_preselecao=0.7, max_sugestoes=3,
    ),
    "processos": PerfilMatching(
        "processos", normalizar_texto, similaridade_jaccard,
        limite_sugestao=0.5, limite_preselecao=0.7, max_sugestoes=3,
    ),
    "notificacoes": PerfilMatching(
        "notificacoes", normalizar_texto, similaridade_jaccard,
        limite_sugestao=0.5, limite_preselecao=0.7, max_sugestoes=3,
    ),
    "itens-notificacao": PerfilMatching(
        "itens-notificacao", normalizar_nome_empresa, similaridade_palavras,
        limite_sugestao=0.3, sugestao_inclusiva=False,
        limite_preselecao=0.7, max_sugestoes=5,
    ),
    "condicionantes": PerfilMatching(
        "condicionantes", _sem_espacos, similaridade_caracteres,
        limite_sugestao=0.3, sugestao_inclusiva=False,
        limite_preselecao=0.5, preselecao_inclusiva=False, max_sugestoes=5,
    ),
    "pdf": PerfilMatching(
        "pdf", normalizar_nome_cliente_pdf, similaridade_levenshtein,
        limite_sugestao=0.7, limite_preselecao=0.9, max_sugestoes=3,
    ),
    "colaboradores": PerfilMatching(
        "colaboradores", normalizar_texto, similaridade_colaborador,
        limite_sugestao=0.3, limite_preselecao=0.7, max_sugestoes=3,
    ),
}


def get_perfil(nome: str) -> PerfilMatching:
    try:
        return PERFIS[nome]
    except KeyError:
        raise ValueError(f"Perfil de matching desconhecido: {nome}")


class CompanyMatcher:
    """Casa nomes de empresas vindos de arquivos com a lista de clientes"""

    def __init__(self, clientes: Sequence[Cliente], perfil: PerfilMatching):
        self.perfil = perfil
        self.clientes = list(clientes)
        self._normalizados = [(c, perfil.normalizar(c.name)) for c in self.clientes]

    def buscar_exato(self, nome: str) -> Optional[Cliente]:
        alvo = self.perfil.normalizar(nome)
        if not alvo:
            return None
        for cliente, normalizado in self._normalizados:
            if normalizado == alvo:
                return cliente
        return None

    def sugerir(self, nome: str) -> List[SugestaoCliente]:
        """Clientes acima do limite de sugestão, do mais parecido ao menos"""
        alvo = self.perfil.normalizar(nome)
        sugestoes = []
        for cliente, normalizado in self._normalizados:
            score = self.perfil.similaridade(alvo, normalizado)
            if self.perfil.aceita_sugestao(score):
                sugestoes.append(SugestaoCliente(
                    client_id=cliente.id,
                    client_name=cliente.name,
                    score=round(score, 4),
                ))
        sugestoes.sort(key=lambda s: s.score, reverse=True)
        return sugestoes[:self.perfil.max_sugestoes]

    def casar(self, nome: str) -> ResultadoMatch:
        exato = self.buscar_exato(nome)
        if exato:
            return ResultadoMatch(
                empresa_excel=nome,
                match_type=MatchTypeEnum.EXACT,
                client_id=exato.id,
                client_name=exato.name,
                confidence=1.0,
                selected=True,
            )

        sugestoes = self.sugerir(nome)
        melhor = sugestoes[0] if sugestoes else None
        if melhor and self.perfil.aceita_preselecao(melhor.score):
            return ResultadoMatch(
                empresa_excel=nome,
                match_type=MatchTypeEnum.SUGGESTED,
                client_id=melhor.client_id,
                client_name=melhor.client_name,
                confidence=melhor.score,
                suggestions=sugestoes,
                selected=True,
            )

        return ResultadoMatch(
            empresa_excel=nome,
            match_type=MatchTypeEnum.NONE,
            confidence=melhor.score if melhor else 0.0,
            suggestions=sugestoes,
        )


ORDEM_MATCH = {MatchTypeEnum.EXACT: 0, MatchTypeEnum.SUGGESTED: 1, MatchTypeEnum.NONE: 2}


def casar_empresas(nomes: Iterable[str], clientes: Sequence[Cliente],
                   perfil: PerfilMatching) -> List[ResultadoMatch]:
    """Casa todas as empresas e ordena: exatas, sugeridas, sem match"""
    matcher = CompanyMatcher(clientes, perfil)
    resultados = [matcher.casar(nome) for nome in nomes]
    resultados.sort(key=lambda r: ORDEM_MATCH[r.match_type])
    return resultados

# === COLABORADORES E INICIAIS ===

def gerar_iniciais(nome: str) -> str:
    palavras = [p for p in str(nome or "").split() if p]
    return "".join(p[0] for p in palavras[:2]).upper()


def extrair_colaboradores(responsavel: Optional[str]) -> List[str]:
    """Colaboradores conhecidos citados no campo responsável"""
    normalizado = normalizar_texto(responsavel)
    if not normalizado:
        return []
    return [c for c in COLABORADORES_CONHECIDOS if c in normalizado]


def casar_colaborador(nome: str, colaboradores: Sequence[Cliente]) -> ColaboradorMatch:
    resultado = CompanyMatcher(colaboradores, PERFIS["colaboradores"]).casar(nome)
    return ColaboradorMatch(
        nome_excel=nome,
        match_type=resultado.match_type,
        collaborator_id=resultado.client_id,
        collaborator_name=resultado.client_name,
        confidence=resultado.confidence,
        suggestions=resultado.suggestions,
        selected=resultado.selected,
    )
