"""
Normaliza as respostas da Paradise.
O gateway devolve os mesmos dados em formatos diferentes conforme o cluster
(campos na raiz, em data, em data.transaction, com nomes variados); aqui tudo
vira um contrato estável {tx_id, tx_hash, status, pix: {brcode, qr_code_base64}}.
"""
import base64
import io
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import qrcode

logger = logging.getLogger(__name__)

OFFER_HASH_PATHS = (
    ('hash',),
    ('offer_hash',),
    ('data', 'hash'),
    ('data', 'offer_hash'),
    ('offer', 'hash'),
    ('data', 'offer', 'hash'),
)
OFFER_PRICE_PATHS = (('price',), ('amount',), ('data', 'price'), ('data', 'amount'))

TX_ID_KEYS = ('id', 'tx_id', 'tx', 'transaction_id')
TX_HASH_KEYS = ('transaction_hash', 'hash', 'tx_hash')
STATUS_KEYS = ('payment_status', 'status', 'transaction_status')
BRCODE_KEYS = ('brcode', 'br_code', 'pix_qr_code', 'copia_e_cola', 'payload', 'pix_code')
QR_BASE64_KEYS = ('qr_code_base64', 'qrcode_base64', 'qr_code_image')

TERMINAL_STATUSES = {'paid'}

# Todo BR Code (EMV) começa com o Payload Format Indicator "000201"
EMV_PREFIX = '000201'


@dataclass
class PixCode:
    brcode: Optional[str] = None
    qr_code_base64: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {'brcode': self.brcode, 'qr_code_base64': self.qr_code_base64}


@dataclass
class GatewayTransaction:
    tx_id: Optional[str]
    tx_hash: Optional[str]
    status: str = 'pending'
    pix: Optional[PixCode] = None
    raw: Any = field(default=None, repr=False)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


def dig(data: Any, path: Iterable[str]) -> Any:
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def first_present(containers: Iterable[Any], keys: Iterable[str], accept=None) -> Any:
    """Primeira chave candidata (na ordem de prioridade) presente em algum container."""
    containers = [c for c in containers if isinstance(c, dict)]
    for key in keys:
        for container in containers:
            value = container.get(key)
            if value in (None, '', {}, []):
                continue
            if accept is None or accept(value):
                return value
    return None


def extract_offer_hash(resp: Any) -> Optional[str]:
    for path in OFFER_HASH_PATHS:
        value = dig(resp, path)
        if isinstance(value, str) and value:
            return value
    return None


def extract_offer_price(resp: Any) -> Optional[int]:
    for path in OFFER_PRICE_PATHS:
        value = dig(resp, path)
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return int(value)
    return None


def unwrap_transaction(raw: Any) -> Any:
    """Listagens do gateway vêm como {data: [tx, ...]}; devolve a primeira."""
    if isinstance(raw, dict) and isinstance(raw.get('data'), list):
        return raw['data'][0] if raw['data'] else None
    if isinstance(raw, list):
        return raw[0] if raw else None
    return raw


def _containers(raw: Any) -> List[Dict[str, Any]]:
    raw = unwrap_transaction(raw)
    # do mais específico para o envelope externo
    candidates = [dig(raw, ('data', 'transaction')), dig(raw, ('transaction',)), dig(raw, ('data',)), raw]
    return [c for c in candidates if isinstance(c, dict)]


def _strip_data_url(value: str) -> str:
    if value.startswith('data:') and ',' in value:
        return value.split(',', 1)[1]
    return value


def _is_scalar(value: Any) -> bool:
    return isinstance(value, (str, int)) and not isinstance(value, bool)


def _is_text(value: Any) -> bool:
    return isinstance(value, str) and bool(value.strip())


def looks_like_brcode(value: Any) -> bool:
    return isinstance(value, str) and value.strip().startswith(EMV_PREFIX)


def extract_pix(raw: Any) -> Optional[PixCode]:
    containers = _containers(raw)
    pix_containers = [c['pix'] for c in containers if isinstance(c.get('pix'), dict)] + containers

    brcode = first_present(pix_containers, BRCODE_KEYS, accept=_is_text)
    qr64 = first_present(pix_containers, QR_BASE64_KEYS, accept=_is_text)

    # "qr_code" é ambíguo: às vezes é o copia-e-cola, às vezes a imagem
    ambiguous = first_present(pix_containers, ('qr_code',), accept=_is_text)
    if isinstance(ambiguous, str):
        if looks_like_brcode(ambiguous):
            brcode = brcode or ambiguous
        else:
            qr64 = qr64 or ambiguous

    brcode = brcode.strip() if isinstance(brcode, str) else None
    qr64 = _strip_data_url(qr64.strip()) if isinstance(qr64, str) else None
    if not brcode and not qr64:
        return None
    return PixCode(brcode=brcode or None, qr_code_base64=qr64 or None)


def extract_status(raw: Any, default: Optional[str] = 'pending') -> Optional[str]:
    status = first_present(_containers(raw), STATUS_KEYS, accept=_is_text)
    if status is None:
        return default
    return status.strip().lower()


def normalize_transaction(raw: Any) -> GatewayTransaction:
    containers = _containers(raw)
    tx_id = first_present(containers, TX_ID_KEYS, accept=_is_scalar)
    tx_hash = first_present(containers, TX_HASH_KEYS, accept=_is_scalar)
    return GatewayTransaction(
        tx_id=str(tx_id) if tx_id is not None else None,
        tx_hash=str(tx_hash) if tx_hash is not None else None,
        status=extract_status(raw),
        pix=extract_pix(raw),
        raw=unwrap_transaction(raw),
    )


def render_qr_base64(brcode: str) -> str:
    """Gera o PNG do QR a partir do copia-e-cola (base64 puro, sem prefixo data:)."""
    qr = qrcode.QRCode(box_size=10, border=4)
    qr.add_data(brcode)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")

    buffered = io.BytesIO()
    img.save(buffered, format="PNG")
    return base64.b64encode(buffered.getvalue()).decode('ascii')


def ensure_qr_image(tx: GatewayTransaction) -> GatewayTransaction:
    if tx.pix and tx.pix.brcode and not tx.pix.qr_code_base64:
        tx.pix.qr_code_base64 = render_qr_base64(tx.pix.brcode)
        logger.debug("QR Code PIX gerado localmente a partir do brcode")
    return tx


def to_client(tx: GatewayTransaction) -> Dict[str, Any]:
    return {
        'tx_id': tx.tx_id,
        'tx_hash': tx.tx_hash,
        'status': tx.status,
        'pix': tx.pix.to_dict() if tx.pix else None,
    }
