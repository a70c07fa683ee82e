# src/api/routes/nfe.py
# Defines API endpoints for NFe synchronization and queries.

from datetime import date, datetime
from typing import Optional, Any

from flask import Blueprint, request, jsonify, current_app, Response

from src.services.nfe_service import NfeService
from src.services.nfe_sync_service import NfeSyncService
from src.domain.nfe import NFeFilter
from src.api.errors import ApiError, ValidationError, ServiceError
from src.utils.logger import logger, mask_key

nfe_bp = Blueprint('nfe', __name__)


def _get_nfe_service() -> NfeService:
    service = current_app.config.get('nfe_service')
    if not service:
        logger.critical("NfeService not found in application config!")
        raise ServiceError("NFe service is unavailable.", 503)
    return service

def _get_sync_service() -> NfeSyncService:
    service = current_app.config.get('nfe_sync_service')
    if not service:
        logger.critical("NfeSyncService not found in application config!")
        raise ServiceError("NFe sync service is unavailable.", 503)
    return service

def _parse_date(value: Any, name: str) -> Optional[date]:
    """Parses 'YYYY-MM-DD'. Empty values are None."""
    if value is None or str(value).strip() == "":
        return None
    try:
        return datetime.strptime(str(value).strip(), "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError(f"Formato de data inválido para '{name}': '{value}'. Use YYYY-MM-DD.")

def _parse_int(value: Any, name: str) -> Optional[int]:
    if value is None or str(value).strip() == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Parâmetro '{name}' deve ser um número inteiro.")

def _error_response(e: ApiError, context: str):
    if e.status_code >= 500:
        logger.error(f"API error {context}: {e.message}", exc_info=True)
    else:
        logger.warning(f"API error {context}: {e.message}")
    return jsonify(e.to_dict()), e.status_code


@nfe_bp.route('/sync', methods=['POST'])
def trigger_sync():
    """
    Runs a sync for the issuer/window and returns the resulting job.
    ---
    tags: [NFe]
    parameters (JSON body or query string):
      cnpj: optional, 14 digits; defaults to SEFAZ_CNPJ
      start_date / end_date: optional, YYYY-MM-DD; default lookback window when absent
    responses:
      200: SyncJob (status completed or failed)
      400: invalid parameters
    """
    data = request.get_json(silent=True) if request.is_json else None
    if data is not None and not isinstance(data, dict):
        return jsonify({"error": "Invalid JSON payload type. Expected an object."}), 400
    params = data or request.args

    try:
        cnpj = str(params.get('cnpj') or '').strip() or None
        if cnpj and not (len(cnpj) == 14 and cnpj.isdigit()):
            raise ValidationError("CNPJ inválido. Deve conter 14 dígitos.")
        start_date = _parse_date(params.get('start_date'), 'start_date')
        end_date = _parse_date(params.get('end_date'), 'end_date')
        if start_date and end_date and start_date > end_date:
            raise ValidationError("start_date não pode ser posterior a end_date.")

        logger.info(f"Sync request received (cnpj={cnpj or 'default'}, start={start_date}, end={end_date}).")
        job = _get_sync_service().run_sync(issuer_cnpj=cnpj, start_date=start_date, end_date=end_date)
        return jsonify(job.to_dict()), 200
    except ApiError as e:
        return _error_response(e, "triggering sync")


@nfe_bp.route('/', methods=['GET'], strict_slashes=False)
def list_nfes():
    """
    Lists synchronized NFes, most recent first.
    Query: issuer_cnpj (alias cnpj_emitente), status, start_date, end_date, page (default 1), limit (default 20, max 100).
    """
    try:
        nfe_filter = NFeFilter(
            issuer_cnpj=request.args.get('issuer_cnpj') or request.args.get('cnpj_emitente'),
            status=request.args.get('status'),
            start_date=_parse_date(request.args.get('start_date'), 'start_date'),
            end_date=_parse_date(request.args.get('end_date'), 'end_date'),
            page=_parse_int(request.args.get('page'), 'page'),
            page_size=_parse_int(request.args.get('limit'), 'limit'),
        )
        page = _get_nfe_service().list_nfes(nfe_filter)
        return jsonify(page.to_dict()), 200
    except ApiError as e:
        return _error_response(e, "listing NFes")


@nfe_bp.route('/stats', methods=['GET'])
def get_stats():
    """Aggregates count and value per status for the inclusive window. Both dates are required."""
    try:
        start_date = _parse_date(request.args.get('start_date'), 'start_date')
        end_date = _parse_date(request.args.get('end_date'), 'end_date')
        stats = _get_nfe_service().get_stats(start_date, end_date)
        return jsonify(stats.to_dict()), 200
    except ApiError as e:
        return _error_response(e, "computing stats")


@nfe_bp.route('/<string:access_key>', methods=['GET'])
def get_nfe(access_key: str):
    try:
        nfe = _get_nfe_service().get_nfe(access_key)
        return jsonify(nfe.to_dict()), 200
    except ApiError as e:
        return _error_response(e, f"getting NFe {mask_key(access_key)}")


@nfe_bp.route('/<string:access_key>/xml', methods=['GET'])
def download_xml(access_key: str):
    """Returns the stored XML as an attachment."""
    logger.info(f"XML download request received for access key: {mask_key(access_key)}")
    try:
        xml_bytes = _get_nfe_service().get_xml(access_key)
        return Response(
            xml_bytes,
            mimetype='application/xml',
            headers={'Content-Disposition': f'attachment; filename="{access_key}.xml"'}
        )
    except ApiError as e:
        return _error_response(e, f"downloading XML {mask_key(access_key)}")


@nfe_bp.route('/<string:access_key>/status', methods=['POST'])
def update_status(access_key: str):
    """
    Applies a status change reported by an external event.
    Body: {"status": "canceled", "reason": "..."}; reason is required for 'canceled'.
    """
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        return jsonify({"error": "Request must be a JSON object."}), 400

    try:
        if not data.get('status'):
            raise ValidationError("Campo 'status' é obrigatório.")
        nfe = _get_nfe_service().update_status(access_key, data.get('status'), data.get('reason'))
        return jsonify(nfe.to_dict()), 200
    except ApiError as e:
        return _error_response(e, f"updating status of NFe {mask_key(access_key)}")
