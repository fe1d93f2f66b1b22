import logging

from flask import Blueprint, current_app, jsonify, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

from cep import lookup_cep
from pagamentos_gateway import verify_hmac_signature
from seguranca import mask_ip, sanitize_for_log

logger = logging.getLogger(__name__)

limiter = Limiter(key_func=get_remote_address)  # Rate limiting
bp = Blueprint('checkout', __name__)

SIGNATURE_HEADERS = ('X-Paradise-Signature', 'X-Signature', 'X-GATEWAY-SIGNATURE')


def _service():
    return current_app.extensions['checkout_service']


@bp.route('/health', methods=['GET'])
@bp.route('/api/health', methods=['GET'])
def health():
    settings = current_app.extensions['settings']
    return jsonify({'ok': True, 'gateway': settings.gateway_provider})


@bp.route('/checkout', methods=['POST'])
@bp.route('/api/checkout', methods=['POST'])
@limiter.limit("20 per minute")
def checkout():
    body = request.get_json(silent=True)
    logger.info(f"POST /checkout de IP={mask_ip(request.remote_addr or '')}")
    result = _service().checkout(body)
    return jsonify(result), 200


@bp.route('/tx/<id_or_hash>', methods=['GET'])
@bp.route('/api/tx/<id_or_hash>', methods=['GET'])
def transaction_status(id_or_hash):
    return jsonify(_service().lookup(id_or_hash))


@bp.route('/cep/<zip_code>', methods=['GET'])
@limiter.limit("30 per minute")
def cep(zip_code):
    return jsonify(lookup_cep(zip_code))


@bp.route('/webhooks/paradise', methods=['POST'])
@bp.route('/api/webhooks/paradise', methods=['POST'])
def paradise_webhook():
    # Sempre 200: o gateway não deve reenviar por causa de erro nosso
    try:
        secret = current_app.extensions['settings'].webhook_secret
        if secret:
            signature = next((request.headers.get(h) for h in SIGNATURE_HEADERS if request.headers.get(h)), '')
            if not verify_hmac_signature(request.get_data(), signature, secret):
                logger.warning(f"Webhook com assinatura inválida ou ausente. IP={mask_ip(request.remote_addr or '')}")
                return 'ok', 200

        event = request.get_json(force=True, silent=True)
        if event is None and request.form:
            event = request.form.to_dict()
        if event is None:
            logger.warning(f"Webhook com corpo ilegível: {sanitize_for_log(request.get_data(as_text=True))}")
            return 'ok', 200

        _service().apply_webhook(event)
    except Exception:
        logger.exception('Falha ao processar webhook da Paradise.')
    return 'ok', 200
