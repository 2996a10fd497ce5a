"""Fluxo das importações de relatórios mensais em PDF"""
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from loguru import logger

from exceptions import (
    ImportacaoDuplicadaError,
    ImportacaoError,
    PdfInvalidoError,
    ImportacaoNaoEncontradaError,
    TransicaoInvalidaError,
)
from matching import PERFIS, CompanyMatcher
from models import (
    Cliente,
    ClientePdfCasado,
    ClientePdfExtraido,
    MatchTypeEnum,
    StatusClientePdfEnum,
    StatusPdfImportEnum,
)
from pdf_parser import ROTULOS_METRICAS, calcular_hash, processar_pdf
from settings import Settings, get_settings
from supabase_client import SupabaseClient


def casar_clientes_pdf(extraidos: Sequence[ClientePdfExtraido], clientes: Sequence[Cliente],
                       aliases: Sequence[Dict[str, Any]] = ()) -> List[ClientePdfCasado]:
    """Apelidos salvos primeiro, depois nome exato, depois similaridade"""
    perfil = PERFIS['pdf']
    matcher = CompanyMatcher(clientes, perfil)
    por_id = {c.id: c for c in clientes}
    por_alias = {a['alias_normalized']: a['client_id'] for a in aliases}

    casados = []
    for extraido in extraidos:
        client_id = por_alias.get(extraido.nome_normalizado)
        if client_id in por_id:
            casados.append(ClientePdfCasado(
                cliente=extraido,
                match_status=StatusClientePdfEnum.LINKED,
                matched_client_id=client_id,
                matched_client_name=por_id[client_id].name,
                match_score=1.0,
            ))
            continue

        resultado = matcher.casar(extraido.nome_bruto)
        if resultado.match_type != MatchTypeEnum.NONE:
            status = StatusClientePdfEnum.AUTO
        elif resultado.suggestions:
            status = StatusClientePdfEnum.PENDING
        else:
            status = StatusClientePdfEnum.UNMATCHED

        casados.append(ClientePdfCasado(
            cliente=extraido,
            match_status=status,
            matched_client_id=resultado.client_id,
            matched_client_name=resultado.client_name,
            match_score=resultado.confidence,
            suggestions=resultado.suggestions,
        ))
    return casados


def totais_por_status(status: Sequence[str]) -> Dict[str, int]:
    """Colunas de totais da importação a partir do status de cada cliente detectado"""
    contagem = {s.value: 0 for s in StatusClientePdfEnum}
    for valor in status:
        contagem[valor] = contagem.get(valor, 0) + 1
    return {
        'total_clients_matched': (
            contagem[StatusClientePdfEnum.AUTO.value] + contagem[StatusClientePdfEnum.LINKED.value]
        ),
        'total_clients_pending': contagem[StatusClientePdfEnum.PENDING.value],
        'total_clients_unmatched': contagem[StatusClientePdfEnum.UNMATCHED.value],
    }


class PdfImportService:
    def __init__(self, db: SupabaseClient, settings: Settings = None):
        self.db = db
        self.settings = settings or get_settings()

    def _importacao(self, import_id: str) -> Dict[str, Any]:
        importacao = self.db.buscar_pdf_import(import_id)
        if not importacao:
            raise ImportacaoNaoEncontradaError(f"Importação de PDF não encontrada: {import_id}")
        return importacao

    def criar_importacao(self, arquivo: str, conteudo: bytes, usuario: Optional[str] = None) -> Dict[str, Any]:
        """Registrar o PDF, extrair os clientes e correlacioná-los"""
        usuario = usuario or self.settings.USUARIO_PADRAO
        file_hash = calcular_hash(conteudo)

        existente = self.db.buscar_pdf_por_hash(file_hash)
        if existente:
            data = str(existente.get('created_at') or '')[:10]
            raise ImportacaoDuplicadaError(
                f"Este PDF já foi importado em {data} ({existente.get('file_name')})"
            )

        importacao = self.db.criar_pdf_import({
            'file_name': arquivo,
            'file_url': None,
            'file_hash': file_hash,
            'file_size': len(conteudo),
            'uploaded_by': usuario,
            'status': StatusPdfImportEnum.UPLOADED.value,
        })
        import_id = importacao['id']
        logger.info(f"📄 PDF {arquivo} registrado: {import_id}")

        self.db.atualizar_pdf_import(import_id, {'status': StatusPdfImportEnum.PARSING.value})
        try:
            resultado = processar_pdf(conteudo)
            if not resultado.clientes:
                raise PdfInvalidoError("Nenhum cliente encontrado no PDF")

            clientes = [Cliente.model_validate(c) for c in self.db.listar_clientes_ativos()]
            casados = casar_clientes_pdf(resultado.clientes, clientes, self.db.listar_aliases())
        except ImportacaoError as e:
            logger.error(f"❌ Erro ao processar PDF {arquivo}: {e}")
            self.db.atualizar_pdf_import(import_id, {
                'status': StatusPdfImportEnum.ERROR.value,
                'error_message': str(e),
            })
            raise

        self.db.inserir_em_lotes('pdf_detected_clients', [
            {
                'pdf_import_id': import_id,
                'client_name_raw': c.cliente.nome_bruto,
                'client_name_normalized': c.cliente.nome_normalizado,
                'matched_client_id': c.matched_client_id,
                'match_status': c.match_status.value,
                'match_score': c.match_score,
                'source_pages': [c.cliente.pagina],
            }
            for c in casados
        ])

        totais = totais_por_status([c.match_status.value for c in casados])
        self.db.atualizar_pdf_import(import_id, {
            'status': StatusPdfImportEnum.READY.value,
            'report_period_year': resultado.periodo_ano,
            'report_period_month': resultado.periodo_mes,
            'total_clients_detected': len(casados),
            **totais,
            'raw_metadata': {
                'rawTextLength': resultado.tamanho_texto,
                'pages': resultado.paginas,
                'metrics': {c.nome_normalizado: c.metricas for c in resultado.clientes},
            },
        })
        logger.info(
            f"✅ PDF {arquivo}: {len(casados)} clientes "
            f"({totais['total_clients_matched']} correlacionados, {totais['total_clients_pending']} pendentes)"
        )
        return self.detalhes(import_id)

    def vincular(self, import_id: str, detected_id: str, client_id: str,
                 criar_alias: bool = True, usuario: Optional[str] = None) -> Dict[str, Any]:
        """Vínculo manual, opcionalmente lembrado como apelido para os próximos PDFs"""
        usuario = usuario or self.settings.USUARIO_PADRAO
        self._importacao(import_id)
        detectado = self.db.buscar_cliente_detectado(detected_id)
        if not detectado or detectado.get('pdf_import_id') != import_id:
            raise ImportacaoNaoEncontradaError(f"Cliente detectado não encontrado: {detected_id}")

        atualizado = self.db.atualizar_cliente_detectado(detected_id, {
            'matched_client_id': client_id,
            'match_status': StatusClientePdfEnum.LINKED.value,
            'match_score': 1,
        })
        if criar_alias:
            self.db.salvar_alias(detectado['client_name_normalized'], client_id, usuario)
            logger.info(f"🔗 Apelido salvo: {detectado['client_name_normalized']} -> {client_id}")

        # Totais da importação acompanham o novo status
        self.db.atualizar_pdf_import(import_id, totais_por_status(
            [d.get('match_status') for d in self.db.listar_clientes_detectados(import_id)]
        ))
        return atualizado or detectado

    def concluir(self, import_id: str, incluir_vinculados: bool = False,
                 usuario: Optional[str] = None) -> Dict[str, Any]:
        """Gravar as métricas dos clientes correlacionados"""
        usuario = usuario or self.settings.USUARIO_PADRAO
        importacao = self._importacao(import_id)
        if importacao.get('status') != StatusPdfImportEnum.READY.value:
            raise TransicaoInvalidaError(
                f"Importação de PDF com status '{importacao.get('status')}' não pode ser concluída"
            )

        aceitos = {StatusClientePdfEnum.AUTO.value}
        if incluir_vinculados:
            aceitos.add(StatusClientePdfEnum.LINKED.value)
        elegiveis = [
            d for d in self.db.listar_clientes_detectados(import_id)
            if d.get('match_status') in aceitos and d.get('matched_client_id')
        ]
        if not elegiveis:
            raise ImportacaoError("Nenhum cliente correlacionado para importar")

        metricas_por_nome = (importacao.get('raw_metadata') or {}).get('metrics') or {}
        linhas = []
        for detectado in elegiveis:
            metricas = metricas_por_nome.get(detectado.get('client_name_normalized'), {})
            for chave, valor in metricas.items():
                linhas.append({
                    'pdf_import_id': import_id,
                    'pdf_detected_client_id': detectado['id'],
                    'client_id': detectado['matched_client_id'],
                    'metric_key': chave,
                    'metric_label': ROTULOS_METRICAS.get(chave, chave),
                    'metric_value_number': valor,
                    'source_pages': detectado.get('source_pages'),
                })
        metricas_salvas = self.db.inserir_em_lotes('pdf_metrics', linhas) if linhas else 0

        self.db.atualizar_pdf_import(import_id, {
            'status': StatusPdfImportEnum.IMPORTED.value,
            'total_clients_matched': len(elegiveis),
            'imported_at': datetime.now().isoformat(),
        })
        self.db.log_action(
            user_name=usuario,
            action_type='import',
            entity_type='pdf_import',
            entity_id=import_id,
            entity_name=importacao.get('file_name') or 'PDF',
            description=f"Importou PDF \"{importacao.get('file_name')}\" com {len(elegiveis)} clientes",
        )
        logger.info(f"🎉 PDF {import_id} importado: {len(elegiveis)} clientes, {metricas_salvas} métricas")
        return {'imported_count': len(elegiveis), 'metrics_count': metricas_salvas}

    def listar(self) -> List[Dict[str, Any]]:
        return self.db.listar_pdf_imports()

    def detalhes(self, import_id: str) -> Dict[str, Any]:
        return {
            'importacao': self._importacao(import_id),
            'clientes': self.db.listar_clientes_detectados(import_id),
            'metricas': self.db.listar_metricas_pdf(import_id),
        }

    def excluir(self, import_id: str) -> bool:
        self._importacao(import_id)
        excluido = self.db.excluir_pdf_import(import_id)
        logger.info(f"🗑️ Importação de PDF excluída: {import_id}")
        return excluido
