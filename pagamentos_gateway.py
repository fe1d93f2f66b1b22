"""
Gateway adapter for PIX payments.
Supports the Paradise public API and a local sandbox implementation.
Designed so another gateway can be plugged in behind the same interface.
"""
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union
import hashlib
import hmac
import logging
import uuid
from urllib.parse import quote

import requests

from erros import GatewayError, NotFound
from normalizacao import extract_offer_hash, extract_offer_price, normalize_transaction, unwrap_transaction

logger = logging.getLogger(__name__)

OFFER_ATTEMPTS = 2  # uma tentativa + um retry imediato
NOT_FOUND_HINTS = ('not found', 'não encontrada', 'nao encontrada')


@dataclass(frozen=True)
class OfferObtained:
    hash: str
    price: Optional[int] = None


@dataclass(frozen=True)
class OfferUnavailable:
    reason: str = ''


OfferResult = Union[OfferObtained, OfferUnavailable]


class BaseGateway:
    def create_offer(self, amount: int, title: str) -> OfferResult:
        raise NotImplementedError()

    def create_transaction(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        raise NotImplementedError()

    def get_transaction(self, id_or_hash: str) -> Dict[str, Any]:
        raise NotImplementedError()


def _parse_body(resp) -> Any:
    # nunca explode: corpo que não é JSON volta como texto
    try:
        return resp.json()
    except ValueError:
        return resp.text


class ParadiseGateway(BaseGateway):
    """Cliente da API pública da Paradise (token vai na query string api_token)."""

    def __init__(self, base_url: str, api_token: str, product_hash: str,
                 session: Optional[requests.Session] = None, timeout: float = 15.0):
        self.base_url = base_url.rstrip('/')
        self.api_token = api_token
        self.product_hash = product_hash
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({'Accept': 'application/json', 'Content-Type': 'application/json'})

    def _params(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        params = {'api_token': self.api_token}
        if extra:
            params.update(extra)
        return params

    def create_offer(self, amount: int, title: str) -> OfferResult:
        url = f"{self.base_url}/products/{self.product_hash}/offers"
        body = {'title': title, 'price': amount, 'amount': amount, 'unit_price': amount}
        reason = ''
        for attempt in range(1, OFFER_ATTEMPTS + 1):
            try:
                resp = self.session.post(url, json=body, params=self._params(), timeout=self.timeout)
            except requests.RequestException as e:
                reason = f"transporte: {e}"
                logger.warning(f"[paradise] criar oferta falhou (tentativa {attempt}): {reason}")
                continue

            data = _parse_body(resp)
            if not resp.ok:
                reason = f"status {resp.status_code}"
            else:
                offer_hash = extract_offer_hash(data)
                if offer_hash:
                    logger.info(f"[paradise] oferta criada amount={amount} offer_hash={offer_hash}")
                    return OfferObtained(hash=offer_hash, price=extract_offer_price(data))
                reason = 'resposta sem offer_hash'
            logger.warning(f"[paradise] criar oferta falhou (tentativa {attempt}): {reason}")

        return OfferUnavailable(reason=reason)

    def create_transaction(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        # Sem retry: a transação tem efeito financeiro e repetir pode duplicar a cobrança
        url = f"{self.base_url}/transactions"
        try:
            resp = self.session.post(url, json=payload, params=self._params(), timeout=self.timeout)
        except requests.RequestException as e:
            logger.error(f"[paradise] criar transação: erro de transporte: {e}")
            raise GatewayError(502, str(e))

        data = _parse_body(resp)
        if not resp.ok:
            message = data.get('message') if isinstance(data, dict) else None
            logger.error(f"[paradise] criar transação FAIL status={resp.status_code}")
            raise GatewayError(resp.status_code, data, message=message or 'Falha ao criar transação')
        if not isinstance(data, dict):
            logger.error('[paradise] criar transação: corpo ilegível')
            raise GatewayError(502, data, message='Resposta ilegível do gateway')
        return data

    def _lookup_variants(self, id_or_hash: str) -> List[Tuple[str, Dict[str, str]]]:
        safe = quote(id_or_hash, safe='')
        variants = [
            (f"/transactions/{safe}", {}),
            (f"/transactions/hash/{safe}", {}),
        ]
        if id_or_hash.isdigit():
            variants.insert(0, (f"/transactions/id/{safe}", {}))
        variants.append(('/transactions', {'transaction_hash': id_or_hash}))
        variants.append(('/transactions', {'id': id_or_hash}))
        return variants

    def get_transaction(self, id_or_hash: str) -> Dict[str, Any]:
        for path, query in self._lookup_variants(id_or_hash):
            try:
                resp = self.session.get(f"{self.base_url}{path}", params=self._params(query), timeout=self.timeout)
            except requests.RequestException as e:
                logger.warning(f"[paradise] consulta {path} falhou: {e}")
                continue

            if resp.status_code == 401:
                raise GatewayError(401, _parse_body(resp), message='Unauthenticated')
            if not resp.ok:
                continue

            data = _parse_body(resp)
            tx = _pick_transaction(data, id_or_hash, listing=bool(query))
            if tx is not None:
                return tx

        raise NotFound('Transação não encontrada (tente com o tx_hash)', {'id': id_or_hash})


def _pick_transaction(data: Any, id_or_hash: str, listing: bool) -> Optional[Dict[str, Any]]:
    if not isinstance(data, (dict, list)):
        return None
    if isinstance(data, dict):
        message = str(data.get('message') or '').lower()
        if any(hint in message for hint in NOT_FOUND_HINTS):
            return None
    if not listing:
        # envelope vazio ({'success': true, 'data': []}) não é transação: segue para a próxima variante
        tx = normalize_transaction(data)
        return data if isinstance(data, dict) and (tx.tx_id or tx.tx_hash) else None

    # listagem: só aceita o item que realmente corresponde ao id/hash pedido
    items = data if isinstance(data, list) else data.get('data')
    if not isinstance(items, list):
        tx = unwrap_transaction(data)
        items = [tx] if isinstance(tx, dict) else []
    for item in items:
        if not isinstance(item, dict):
            continue
        keys = ('id', 'transaction_hash', 'hash', 'tx_id')
        if any(str(item.get(k)) == id_or_hash for k in keys if item.get(k) is not None):
            return item
    return None


def _tlv(tag: str, value: str) -> str:
    return f"{tag}{len(value):02d}{value}"


def _crc16(payload: str) -> str:
    crc = 0xFFFF
    for byte in payload.encode('utf-8'):
        crc ^= byte << 8
        for _ in range(8):
            crc = ((crc << 1) ^ 0x1021) if crc & 0x8000 else (crc << 1)
            crc &= 0xFFFF
    return f"{crc:04X}"


def sandbox_brcode(tx_id: str, amount: int) -> str:
    """BR Code estático de mentira (estrutura EMV válida, chave inexistente)."""
    account = _tlv('00', 'br.gov.bcb.pix') + _tlv('01', f"sandbox-{tx_id[:12]}")
    payload = (
        _tlv('00', '01')
        + _tlv('26', account)
        + _tlv('52', '0000')
        + _tlv('53', '986')
        + _tlv('54', f"{amount / 100:.2f}")
        + _tlv('58', 'BR')
        + _tlv('59', 'LOJA SANDBOX')
        + _tlv('60', 'SAO PAULO')
        + _tlv('62', _tlv('05', tx_id[:25]))
        + '6304'
    )
    return payload + _crc16(payload)


class SandboxGateway(BaseGateway):
    """Gateway local para desenvolvimento e testes; nada sai da máquina."""

    def __init__(self):
        self.transactions: Dict[str, Dict[str, Any]] = {}
        self.offers: Dict[str, int] = {}
        self.payloads: List[Dict[str, Any]] = []

    def create_offer(self, amount: int, title: str) -> OfferResult:
        offer_hash = f"sbx_offer_{uuid.uuid4().hex[:10]}"
        self.offers[offer_hash] = amount
        return OfferObtained(hash=offer_hash, price=amount)

    def create_transaction(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        amount = int(payload.get('amount') or 0)
        if amount <= 0:
            raise GatewayError(422, {'message': 'amount inválido'}, message='O valor deve ser positivo.')
        self.payloads.append(payload)

        tx_id = str(len(self.transactions) + 1000)
        tx_hash = uuid.uuid4().hex
        tx = {
            'id': tx_id,
            'transaction_hash': tx_hash,
            'payment_status': 'pending',
            'amount': amount,
            'pix': {'pix_qr_code': sandbox_brcode(tx_hash, amount)},
        }
        self.transactions[tx_id] = tx
        return dict(tx)

    def get_transaction(self, id_or_hash: str) -> Dict[str, Any]:
        for tx in self.transactions.values():
            if id_or_hash in (tx['id'], tx['transaction_hash']):
                return dict(tx)
        raise NotFound('Transação não encontrada (tente com o tx_hash)', {'id': id_or_hash})

    def mark_paid(self, id_or_hash: str) -> None:
        for tx in self.transactions.values():
            if id_or_hash in (tx['id'], tx['transaction_hash']):
                tx['payment_status'] = 'paid'
                return
        raise NotFound('Transação não encontrada', {'id': id_or_hash})


def get_gateway(settings, session: Optional[requests.Session] = None) -> BaseGateway:
    # Select gateway by settings (GATEWAY_PROVIDER)
    provider = (settings.gateway_provider or 'paradise').lower()
    if provider == 'sandbox':
        logger.warning('Usando SandboxGateway: nenhuma cobrança real será criada.')
        return SandboxGateway()
    return ParadiseGateway(
        base_url=settings.paradise_base_url,
        api_token=settings.paradise_api_token,
        product_hash=settings.paradise_product_hash,
        session=session,
        timeout=settings.gateway_timeout,
    )


def verify_hmac_signature(payload_body: bytes, signature_header: str, secret: str) -> bool:
    """Verify HMAC SHA256 signature of payload body.
    signature_header: value from header, expected as hex string (optionally 'sha256=' prefixed).
    secret: shared secret string
    """
    if not signature_header or not secret:
        return False
    if signature_header.startswith('sha256='):
        signature_header = signature_header[len('sha256='):]
    computed_hmac = hmac.new(secret.encode('utf-8'), payload_body, hashlib.sha256).hexdigest()
    # Use compare_digest to avoid timing attacks
    try:
        return hmac.compare_digest(computed_hmac, signature_header.strip().lower())
    except TypeError:
        # header com caracteres não-ASCII
        return False
