from fastapi import FastAPI, HTTPException, UploadFile, Depends, File, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import logging
import os
from datetime import datetime
from typing import Any, Dict, Optional
from dotenv import load_dotenv
load_dotenv()

from loguru import logger

from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded

import reconciliation
from cache_service import cache
from exceptions import BancoIndisponivelError, ImportacaoError
from import_service import ImportService
from matching import CompanyMatcher, get_perfil
from models import (
    ColaboradoresRequest,
    ConfirmarRequest,
    EmpresaRequest,
    PdfConcluirRequest,
    PdfVincularRequest,
    SessaoImportacao,
    SimilaridadeRequest,
    TipoImportacaoEnum,
    VincularRequest,
)
from pdf_import import PdfImportService
from reconciliation import SessionStore
from settings import get_settings
from supabase_client import SupabaseClient

settings = get_settings()

# Configuração condicional
if settings.is_production:
    # Logs menos verbosos
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

# Configurar logs
os.makedirs(settings.LOG_DIR, exist_ok=True)
logger.add(os.path.join(settings.LOG_DIR, "app.log"), rotation="1 day", level=settings.LOG_LEVEL)

# Criar app FastAPI
app = FastAPI(
    title="Painel AC - Importações",
    description="Importação de planilhas e PDFs com conciliação de empresas e clientes",
    version="1.0.0"
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "PATCH"],
    allow_headers=["*"],
)

@app.middleware("http")
async def error_handler(request: Request, call_next):
    try:
        response = await call_next(request)
        return response
    except Exception as e:
        if settings.is_production:
            # Em produção, não expor detalhes
            logger.error(f"Erro não tratado: {str(e)}")
            return JSONResponse(
                status_code=500,
                content={"detail": "Erro interno do servidor"}
            )
        # Em desenvolvimento, mostrar erro completo
        logger.exception(f"Erro detalhado: {str(e)}")
        raise e

@app.exception_handler(ImportacaoError)
async def importacao_error_handler(request: Request, exc: ImportacaoError):
    logger.warning(f"⚠️ {type(exc).__name__}: {exc}")
    return JSONResponse(status_code=exc.status_code, content={"detail": str(exc)})

# Rate limiting nos uploads
limiter = Limiter(key_func=get_remote_address)
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

session_store = SessionStore(cache)
_supabase: Optional[SupabaseClient] = None

def get_supabase() -> SupabaseClient:
    """Cliente Supabase criado na primeira requisição que precisar dele"""
    global _supabase
    if _supabase is None:
        try:
            _supabase = SupabaseClient()
        except ValueError as e:
            logger.error(f"❌ Erro ao conectar Supabase: {e}")
            raise BancoIndisponivelError("Banco de dados não configurado")
    return _supabase

def get_import_service(db: SupabaseClient = Depends(get_supabase)) -> ImportService:
    return ImportService(db, store=session_store, cache_service=cache, settings=settings)

def get_pdf_service(db: SupabaseClient = Depends(get_supabase)) -> PdfImportService:
    return PdfImportService(db, settings=settings)

async def ler_upload(file: UploadFile) -> bytes:
    content = await file.read()
    limite = settings.MAX_UPLOAD_MB * 1024 * 1024
    if len(content) > limite:
        raise HTTPException(status_code=413, detail=f"Arquivo maior que {settings.MAX_UPLOAD_MB} MB")
    if not content:
        raise HTTPException(status_code=400, detail="Arquivo vazio")
    logger.info(f"Arquivo lido: {file.filename} ({len(content)} bytes)")
    return content

def resposta_sessao(sessao: SessaoImportacao) -> Dict[str, Any]:
    """Sessão sem as linhas brutas, com as visões usadas pelo assistente"""
    dados = sessao.model_dump(mode="json", exclude={"resultados": {"__all__": {"registros"}}})
    dados["encontradas"] = [r.empresa_excel for r in reconciliation.encontradas(sessao)]
    dados["nao_encontradas"] = [r.empresa_excel for r in reconciliation.nao_encontradas(sessao)]
    dados["estatisticas"] = reconciliation.estatisticas(sessao).model_dump()
    return dados

@app.on_event("startup")
async def startup():
    """Inicializar aplicação"""
    logger.info("🚀 Iniciando Painel AC - Importações...")
    logger.info(f"Cache: {cache.health_check()}")
    logger.info("✅ Sistema iniciado com sucesso!")

# === IMPORTAÇÃO DE PLANILHAS ===

@app.post("/api/importacoes/{tipo}")
@limiter.limit(settings.UPLOAD_RATE_LIMIT)
async def upload_planilha(request: Request, tipo: TipoImportacaoEnum, file: UploadFile = File(...),
                          service: ImportService = Depends(get_import_service)):
    """Upload da planilha e abertura da sessão de conciliação"""
    logger.info(f"Recebido upload: {file.filename} ({tipo.value})")
    content = await ler_upload(file)
    sessao = service.iniciar(tipo, file.filename, content)
    return resposta_sessao(sessao)

@app.get("/api/importacoes/{sessao_id}")
async def obter_sessao(sessao_id: str):
    return resposta_sessao(session_store.carregar(sessao_id))

@app.get("/api/importacoes/{sessao_id}/estatisticas")
async def estatisticas_sessao(sessao_id: str):
    return reconciliation.estatisticas(session_store.carregar(sessao_id))

@app.get("/api/importacoes/{sessao_id}/empresas/{empresa}")
async def detalhar_empresa(sessao_id: str, empresa: str):
    """Resultado de uma empresa com as linhas do arquivo"""
    sessao = session_store.carregar(sessao_id)
    return reconciliation.buscar_resultado(sessao, empresa)

@app.post("/api/importacoes/{sessao_id}/vincular")
async def vincular_empresa(sessao_id: str, dados: VincularRequest,
                           service: ImportService = Depends(get_import_service)):
    logger.info(f"🔗 Vinculando '{dados.empresa}' ao cliente {dados.client_id}")
    return resposta_sessao(service.vincular(sessao_id, dados.empresa, dados.client_id))

@app.post("/api/importacoes/{sessao_id}/ignorar")
async def ignorar_empresa(sessao_id: str, dados: EmpresaRequest,
                          service: ImportService = Depends(get_import_service)):
    return resposta_sessao(service.ignorar(sessao_id, dados.empresa))

@app.post("/api/importacoes/{sessao_id}/criar-nova")
async def criar_nova_empresa(sessao_id: str, dados: EmpresaRequest,
                             service: ImportService = Depends(get_import_service)):
    return resposta_sessao(service.criar_nova(sessao_id, dados.empresa))

@app.post("/api/importacoes/{sessao_id}/selecionar")
async def alternar_selecao(sessao_id: str, dados: EmpresaRequest,
                           service: ImportService = Depends(get_import_service)):
    return resposta_sessao(service.alternar_selecao(sessao_id, dados.empresa))

@app.post("/api/importacoes/{sessao_id}/confirmar")
async def confirmar_sessao(sessao_id: str, dados: ConfirmarRequest,
                           service: ImportService = Depends(get_import_service)):
    return resposta_sessao(service.confirmar(sessao_id, dados.modo, dados.acao_duplicado))

@app.post("/api/importacoes/{sessao_id}/voltar")
async def voltar_sessao(sessao_id: str, service: ImportService = Depends(get_import_service)):
    return resposta_sessao(service.voltar(sessao_id))

@app.post("/api/importacoes/{sessao_id}/importar")
async def importar_sessao(sessao_id: str, service: ImportService = Depends(get_import_service)):
    """Gravar as empresas selecionadas"""
    try:
        sessao = service.importar(sessao_id)
    except ImportacaoError:
        raise
    except Exception as e:
        logger.error(f"❌ Erro ao importar: {str(e)}")
        raise HTTPException(status_code=500, detail=f"Erro interno: {str(e)}")

    return {
        "success": True,
        "message": "Importação concluída",
        "relatorio": sessao.relatorio,
        "sessao": resposta_sessao(sessao),
    }

@app.post("/api/importacoes/{sessao_id}/colaboradores")
async def casar_colaboradores(sessao_id: str, dados: ColaboradoresRequest,
                              service: ImportService = Depends(get_import_service)):
    return service.casar_colaboradores(sessao_id, dados.colaboradores)

@app.delete("/api/importacoes/{sessao_id}")
async def descartar_sessao(sessao_id: str):
    session_store.carregar(sessao_id)
    session_store.remover(sessao_id)
    return {"success": True, "message": "Sessão descartada"}

# === IMPORTAÇÃO DE PDF ===

@app.post("/api/pdf-importacoes")
@limiter.limit(settings.UPLOAD_RATE_LIMIT)
async def upload_pdf(request: Request, file: UploadFile = File(...),
                     service: PdfImportService = Depends(get_pdf_service)):
    logger.info(f"Recebido PDF: {file.filename}")
    if not (file.filename or "").lower().endswith(".pdf"):
        raise HTTPException(status_code=400, detail="Apenas arquivos PDF são aceitos")
    content = await ler_upload(file)
    return service.criar_importacao(file.filename, content)

@app.get("/api/pdf-importacoes")
async def listar_pdfs(service: PdfImportService = Depends(get_pdf_service)):
    return service.listar()

@app.get("/api/pdf-importacoes/{import_id}")
async def detalhar_pdf(import_id: str, service: PdfImportService = Depends(get_pdf_service)):
    return service.detalhes(import_id)

@app.delete("/api/pdf-importacoes/{import_id}")
async def excluir_pdf(import_id: str, service: PdfImportService = Depends(get_pdf_service)):
    service.excluir(import_id)
    return {"success": True, "message": "Importação excluída"}

@app.post("/api/pdf-importacoes/{import_id}/vincular")
async def vincular_pdf(import_id: str, dados: PdfVincularRequest,
                       service: PdfImportService = Depends(get_pdf_service)):
    return service.vincular(import_id, dados.detected_id, dados.client_id, dados.criar_alias)

@app.post("/api/pdf-importacoes/{import_id}/concluir")
async def concluir_pdf(import_id: str, dados: PdfConcluirRequest,
                       service: PdfImportService = Depends(get_pdf_service)):
    return service.concluir(import_id, dados.incluir_vinculados)

# === DEBUG ===

@app.post("/api/similaridade")
async def testar_similaridade(dados: SimilaridadeRequest,
                              service: ImportService = Depends(get_import_service)):
    """Mostra como um nome seria casado por um dos perfis"""
    try:
        perfil = get_perfil(dados.perfil)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    clientes = dados.clientes if dados.clientes is not None else service.listar_clientes()
    return CompanyMatcher(clientes, perfil).casar(dados.nome)


@app.get("/health")
async def health_check():
    """Health check simples para monitoramento"""
    try:
        db = get_supabase()
        database = "connected" if db.test_connection() else "error"
    except ImportacaoError:
        database = "not_configured"

    return {
        "status": "ok" if database == "connected" else "error",
        "database": database,
        "cache": cache.health_check(),
        "timestamp": datetime.now().strftime("%Y-%m-%d %H:%M:%S")
    }


@app.get("/api/cache/stats")
async def cache_stats():
    return cache.get_stats()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=settings.PORT)
