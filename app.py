import os
import logging

import click
from flask import Flask, jsonify, request
from flask_talisman import Talisman
from werkzeug.exceptions import HTTPException

from cache_ofertas import build_offer_cache
from checkout import CheckoutService
from config import load_settings
from erros import CheckoutError
from models import db
from pagamentos_gateway import get_gateway
from polling import poll_transaction
from routes import bp, limiter
from seguranca import mask_ip

# ----------------------------------------------------------------------
# 1. LOGGING
# ----------------------------------------------------------------------

logger = logging.getLogger(__name__)


def configure_logging(log_file: str = 'checkout.log'):
    # Arquivo (auditoria) + console
    handlers = [logging.StreamHandler()]
    if log_file:
        handlers.insert(0, logging.FileHandler(log_file))
    logging.basicConfig(
        level=os.getenv('LOG_LEVEL', 'INFO').upper(),
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )


# ----------------------------------------------------------------------
# 2. ERROS (sempre JSON, nunca HTML)
# ----------------------------------------------------------------------

def register_error_handlers(app):
    @app.errorhandler(CheckoutError)
    def handle_checkout_error(e):
        if e.status_code >= 500:
            logger.error(f"{e.error} em {request.path}: {e.message}")
        else:
            logger.info(f"{e.error} em {request.path}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        if e.code == 429:
            logger.warning(f"Rate limit em {request.path} por IP: {mask_ip(request.remote_addr or '')}")
        error = (e.name or 'http_error').lower().replace(' ', '_')
        return jsonify({'ok': False, 'error': error, 'detail': {'message': e.description}}), e.code

    @app.errorhandler(Exception)
    def handle_unexpected(e):
        # Log exception details with stack (server-side) but do not expose internals to client.
        logger.exception(f"Unhandled exception while handling request: {request.path}")
        return jsonify({'ok': False, 'error': 'fatal', 'detail': {'message': 'Erro inesperado'}}), 500


# ----------------------------------------------------------------------
# 3. APLICAÇÃO
# ----------------------------------------------------------------------

def create_app(settings=None, gateway=None, offer_cache=None, testing=False):
    settings = settings or load_settings()
    configure_logging(settings.log_file)

    app = Flask(__name__)
    app.config['SQLALCHEMY_DATABASE_URI'] = settings.database_url
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.config['RATELIMIT_STORAGE_URI'] = settings.ratelimit_storage_uri
    app.config['RATELIMIT_ENABLED'] = not testing
    app.config['TESTING'] = testing
    app.json.ensure_ascii = False

    db.init_app(app)
    limiter.init_app(app)
    # API JSON: CSP fechada; FORCE_HTTPS liga o redirect em produção
    Talisman(
        app,
        content_security_policy={'default-src': "'none'", 'frame-ancestors': "'none'"},
        force_https=settings.force_https,
    )

    if gateway is None:
        gateway = get_gateway(settings)
    if offer_cache is None:
        offer_cache = build_offer_cache(settings.offer_cache_backend, settings.redis_url)

    app.extensions['settings'] = settings
    app.extensions['checkout_service'] = CheckoutService(gateway, offer_cache, settings)

    app.register_blueprint(bp)
    register_error_handlers(app)
    register_commands(app)

    with app.app_context():
        db.create_all()

    logger.info(f"API de checkout pronta (gateway={settings.gateway_provider}).")
    return app


# ----------------------------------------------------------------------
# 4. CLI
# ----------------------------------------------------------------------

def register_commands(app):
    @app.cli.command('watch-tx')
    @click.argument('tx_id')
    @click.option('--interval', default=2.5, show_default=True, help='Segundos entre consultas.')
    @click.option('--max-attempts', default=None, type=int, help='Limite de consultas.')
    def watch_tx(tx_id, interval, max_attempts):
        """Acompanha o status de uma transação até ela ser paga."""
        service = app.extensions['checkout_service']

        def show(data):
            click.echo(f"{tx_id}: {data.get('status')}")

        result = poll_transaction(service.lookup, tx_id, interval=interval,
                                  max_attempts=max_attempts, on_update=show)
        if result is None:
            raise click.ClickException('Nenhuma resposta do gateway.')
        click.echo(f"Status final: {result.get('status')}")


if __name__ == '__main__':
    # Em produção, use debug=False; control via env
    debug_mode = os.getenv('FLASK_DEBUG', 'false').lower() == 'true'
    create_app().run(debug=debug_mode, port=int(os.getenv('PORT', '3333')))
