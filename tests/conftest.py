import io
import os
import uuid
from datetime import datetime

# Ambiente de teste: sem Supabase real, sem Redis e sem limite de upload
os.environ["SUPABASE_URL"] = ""
os.environ["SUPABASE_SERVICE_KEY"] = ""
os.environ["REDIS_URL"] = ""
os.environ["ENVIRONMENT"] = "test"
os.environ["UPLOAD_RATE_LIMIT"] = "1000/minute"

import pandas as pd
import pytest

from cache_service import CacheService
from import_service import ImportService
from pdf_import import PdfImportService
from reconciliation import SessionStore
from supabase_client import SupabaseClient


class FakeResult:
    def __init__(self, data, count=None):
        self.data = data
        self.count = count


class FakeRpc:
    def __init__(self, db, nome, params):
        self.db = db
        self.nome = nome
        self.params = params

    def execute(self):
        self.db.rpcs.append((self.nome, self.params))
        return FakeResult(None)


class FakeQuery:
    """Imitação mínima do query builder do supabase-py"""

    def __init__(self, db, tabela):
        self.db = db
        self.tabela = tabela
        self.operacao = "select"
        self.payload = None
        self.on_conflict = None
        self.filtros = []
        self._ordem = None
        self._limite = None

    def select(self, *colunas, count=None):
        return self

    def insert(self, payload):
        self.operacao, self.payload = "insert", payload
        return self

    def update(self, payload):
        self.operacao, self.payload = "update", payload
        return self

    def upsert(self, payload, on_conflict=None):
        self.operacao, self.payload, self.on_conflict = "upsert", payload, on_conflict
        return self

    def delete(self):
        self.operacao = "delete"
        return self

    def eq(self, coluna, valor):
        self.filtros.append((coluna, valor))
        return self

    def order(self, coluna, desc=False):
        self._ordem = (coluna, desc)
        return self

    def limit(self, n):
        self._limite = n
        return self

    def _casa(self, linha):
        return all(linha.get(c) == v for c, v in self.filtros)

    def _novo(self, item):
        self.db.sequencia += 1
        linha = {"id": str(uuid.uuid4()), "created_at": f"{datetime.now().isoformat()}-{self.db.sequencia:06d}"}
        linha.update(item)
        return linha

    def execute(self):
        self.db.chamadas.append((self.tabela, self.operacao))
        if (self.tabela, self.operacao) in self.db.falhas:
            raise RuntimeError(f"falha simulada em {self.tabela}.{self.operacao}")

        linhas = self.db.tables.setdefault(self.tabela, [])
        itens = self.payload if isinstance(self.payload, list) else [self.payload]

        if self.operacao == "insert":
            novas = [self._novo(item) for item in itens]
            linhas.extend(novas)
            return FakeResult([dict(l) for l in novas])

        if self.operacao == "update":
            alteradas = [l for l in linhas if self._casa(l)]
            for linha in alteradas:
                linha.update(self.payload)
            return FakeResult([dict(l) for l in alteradas])

        if self.operacao == "upsert":
            chaves = self.on_conflict.split(",")
            gravadas = []
            for item in itens:
                existente = next(
                    (l for l in linhas if all(l.get(k) == item.get(k) for k in chaves)), None
                )
                if existente:
                    existente.update(item)
                else:
                    existente = self._novo(item)
                    linhas.append(existente)
                gravadas.append(dict(existente))
            return FakeResult(gravadas)

        if self.operacao == "delete":
            removidas = [l for l in linhas if self._casa(l)]
            self.db.tables[self.tabela] = [l for l in linhas if not self._casa(l)]
            return FakeResult([dict(l) for l in removidas])

        resultado = [dict(l) for l in linhas if self._casa(l)]
        if self._ordem:
            coluna, desc = self._ordem
            resultado.sort(key=lambda l: str(l.get(coluna) or ""), reverse=desc)
        if self._limite is not None:
            resultado = resultado[:self._limite]
        return FakeResult(resultado, count=len(resultado))


class FakeSupabase:
    def __init__(self):
        self.tables = {}
        self.rpcs = []
        self.chamadas = []
        self.falhas = set()
        self.sequencia = 0

    def table(self, nome):
        return FakeQuery(self, nome)

    def rpc(self, nome, params):
        return FakeRpc(self, nome, params)


CLIENTES = [
    {"id": "c1", "name": "Petróleo Ltda", "initials": "PL", "is_active": True,
     "demands_completed": 2, "demands_in_progress": 1, "demands_not_started": 0,
     "demands_cancelled": 0, "collaborator_celine": True, "collaborator_gabi": False,
     "collaborator_darley": False, "collaborator_vanessa": False},
    {"id": "c2", "name": "Construtora Alfa", "initials": "CA", "is_active": True},
    {"id": "c3", "name": "Mineração Beta Sul", "initials": "MB", "is_active": True},
    {"id": "c4", "name": "Inativa SA", "initials": "IS", "is_active": False},
]


@pytest.fixture
def fake_db():
    fake = FakeSupabase()
    fake.tables["clients"] = [dict(c) for c in CLIENTES]
    return fake


@pytest.fixture
def db(fake_db):
    return SupabaseClient(admin_client=fake_db)


@pytest.fixture
def cache_service():
    return CacheService()


@pytest.fixture
def store(cache_service):
    return SessionStore(cache_service)


@pytest.fixture
def import_service(db, store, cache_service):
    return ImportService(db, store=store, cache_service=cache_service)


@pytest.fixture
def pdf_service(db):
    return PdfImportService(db)


@pytest.fixture
def planilha():
    """Gera um .xlsx em memória; a primeira aba é a de `linhas`"""
    def _criar(linhas, aba="Planilha1", extras=None):
        buffer = io.BytesIO()
        with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
            pd.DataFrame(linhas).to_excel(writer, sheet_name=aba, index=False)
            for nome, outras in (extras or {}).items():
                pd.DataFrame(outras).to_excel(writer, sheet_name=nome, index=False)
        return buffer.getvalue()
    return _criar


@pytest.fixture
def demandas_xlsx(planilha):
    return planilha([
        {"Código": "D-1", "Data": "15/03/2024", "Empresa": "Petróleo Ltda", "Descrição": "Renovar alvará",
         "Responsável": "Gabi", "Status": "Concluída"},
        {"Código": "D-2", "Data": 45366, "Empresa": "Petróleo Ltda", "Descrição": "Enviar relatório",
         "Responsável": "Darley e Celine", "Status": "Em andamento"},
        {"Código": "D-3", "Data": None, "Empresa": "Construtora Alfa Engenharia", "Descrição": "Vistoria",
         "Responsável": "Vanessa", "Status": "Não feito"},
        {"Código": None, "Data": None, "Empresa": "Zeta Nova", "Descrição": "Cadastro inicial",
         "Responsável": None, "Status": "cancelada"},
        {"Código": "D-5", "Data": None, "Empresa": "Sem Descrição", "Descrição": None,
         "Responsável": None, "Status": "Concluído"},
    ])
