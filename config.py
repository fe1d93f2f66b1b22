"""
Configuração via variáveis de ambiente (.env carregado com python-dotenv).
Com o provedor 'paradise', faltar qualquer credencial do gateway derruba a
aplicação na inicialização em vez de gerar erro opaco no primeiro checkout.
"""
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv


def _first(env: Mapping[str, str], *names: str, default: str = '') -> str:
    # Aceita nomes novos e antigos das envs para não quebrar deploys existentes
    for name in names:
        value = env.get(name)
        if value:
            return value.strip()
    return default


def _flag(env: Mapping[str, str], name: str, default: str) -> bool:
    return env.get(name, default).lower() == 'true'


@dataclass
class Settings:
    gateway_provider: str = 'paradise'
    paradise_base_url: str = 'https://api.paradisepagbr.com/api/public/v1'
    paradise_api_token: str = ''
    paradise_product_hash: str = ''
    postback_url: str = ''
    webhook_secret: str = ''
    gateway_timeout: float = 15.0
    min_amount_cents: int = 500
    shipping_flat_fee_cents: int = 1500
    shipping_free_from_qty: int = 3
    offer_cache_backend: str = 'memory'
    offer_cache_ttl: int = 600
    redis_url: str = ''
    render_qr_locally: bool = True
    checkout_origin: str = 'hostinger'
    database_url: str = 'sqlite:///checkout.db'
    log_file: str = 'checkout.log'
    force_https: bool = False
    ratelimit_storage_uri: str = 'memory://'

    def validate(self) -> 'Settings':
        if self.gateway_provider not in ('paradise', 'sandbox'):
            raise RuntimeError(f"GATEWAY_PROVIDER inválido: {self.gateway_provider}")
        if self.gateway_provider == 'paradise':
            missing = [
                name for name, value in (
                    ('PARADISE_BASE_URL', self.paradise_base_url),
                    ('PARADISE_API_TOKEN', self.paradise_api_token),
                    ('PARADISE_PRODUCT_HASH', self.paradise_product_hash),
                    ('PARADISE_POSTBACK_URL', self.postback_url),
                ) if not value
            ]
            if missing:
                raise RuntimeError(f"Faltam variáveis de ambiente do gateway: {', '.join(missing)}")
        if self.offer_cache_backend == 'redis' and not self.redis_url:
            raise RuntimeError("OFFER_CACHE_BACKEND=redis exige REDIS_URL")
        return self


def load_settings(env: Optional[Mapping[str, str]] = None) -> Settings:
    if env is None:
        load_dotenv()
        env = os.environ

    postback = _first(env, 'PARADISE_POSTBACK_URL', 'POSTBACK_URL')
    public_url = _first(env, 'PUBLIC_URL')
    if not postback and public_url:
        postback = f"{public_url.rstrip('/')}/webhooks/paradise"

    settings = Settings(
        gateway_provider=_first(env, 'GATEWAY_PROVIDER', default='paradise').lower(),
        paradise_base_url=_first(
            env, 'PARADISE_BASE_URL', 'PARADISE_API_BASE',
            default='https://api.paradisepagbr.com/api/public/v1',
        ).rstrip('/'),
        paradise_api_token=_first(env, 'PARADISE_API_TOKEN'),
        paradise_product_hash=_first(
            env, 'PARADISE_PRODUCT_HASH', 'PARADISE_ANCHOR_PRODUCT', 'PARADISE_ANCHOR_PRODUCT_HASH',
        ),
        postback_url=postback,
        webhook_secret=_first(env, 'PARADISE_WEBHOOK_SECRET'),
        gateway_timeout=float(env.get('GATEWAY_TIMEOUT', '15')),
        min_amount_cents=int(env.get('GATEWAY_MIN_AMOUNT_CENTS', '500')),
        shipping_flat_fee_cents=int(env.get('SHIPPING_FLAT_FEE_CENTS', '1500')),
        shipping_free_from_qty=int(env.get('SHIPPING_FREE_FROM_QTY', '3')),
        offer_cache_backend=_first(env, 'OFFER_CACHE_BACKEND', default='memory').lower(),
        offer_cache_ttl=int(env.get('OFFER_CACHE_TTL', '600')),
        redis_url=_first(env, 'REDIS_URL'),
        render_qr_locally=_flag(env, 'RENDER_QR_LOCALLY', 'true'),
        checkout_origin=_first(env, 'CHECKOUT_ORIGIN', default='hostinger'),
        database_url=_first(env, 'DATABASE_URL', default='sqlite:///checkout.db'),
        log_file=env.get('LOG_FILE', 'checkout.log'),
        force_https=_flag(env, 'FORCE_HTTPS', 'false'),
        ratelimit_storage_uri=_first(env, 'RATELIMIT_STORAGE_URI', default='memory://'),
    )
    return settings.validate()
