"""
Fluxo de checkout PIX:
carrinho -> pedido (frete/mínimo) -> oferta dinâmica -> transação -> contrato do front.
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError

from cache_ofertas import OfferCache
from carrinho import normalize_cart
from config import Settings
from erros import GatewayError, NotFound, ValidationError
from models import Transaction, db
from normalizacao import (
    TERMINAL_STATUSES, GatewayTransaction, PixCode, ensure_qr_image, extract_status,
    normalize_transaction,
)
from pagamentos_gateway import BaseGateway, OfferObtained, OfferResult, OfferUnavailable
from payload_paradise import build_transaction_payload, parse_address, parse_customer
from pedido import Order, SurchargeRule, price_order
from seguranca import hmac_hash, mask_email, sanitize_for_log

logger = logging.getLogger(__name__)

EMPTY_PIX = {'brcode': None, 'qr_code_base64': None}


def _address_source(body: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    # O endereço pode vir em shipping.address, address ou junto do customer
    shipping = body.get('shipping')
    if isinstance(shipping, dict) and isinstance(shipping.get('address'), dict):
        return shipping['address']
    if isinstance(body.get('address'), dict):
        return body['address']
    if isinstance(body.get('customer'), dict):
        return body['customer']
    return None


def _ledger_pix(record: Transaction) -> Optional[Dict[str, Optional[str]]]:
    if not record.brcode and not record.qr_code_base64:
        return None
    return {'brcode': record.brcode, 'qr_code_base64': record.qr_code_base64}


class CheckoutService:
    def __init__(self, gateway: BaseGateway, offer_cache: OfferCache, settings: Settings):
        self.gateway = gateway
        self.offer_cache = offer_cache
        self.settings = settings
        self.rule = SurchargeRule(
            flat_minor_units=settings.shipping_flat_fee_cents,
            free_from_quantity=settings.shipping_free_from_qty,
        )

    # ------------------------------------------------------------------
    # Checkout
    # ------------------------------------------------------------------

    def obtain_offer(self, order: Order) -> OfferResult:
        amount = order.total_minor_units
        try:
            cached = self.offer_cache.get(amount)
        except Exception as e:
            logger.warning(f"Cache de ofertas indisponível (get): {e}")
            cached = None
        if cached:
            logger.info(f"Oferta reaproveitada do cache amount={amount}")
            return OfferObtained(hash=cached, price=amount)

        result = self.gateway.create_offer(amount, order.title)
        if isinstance(result, OfferObtained):
            if result.price is not None and result.price != amount:
                # oferta com preço diferente cobraria um valor que o cliente não viu
                logger.warning(f"Oferta com preço divergente: esperado={amount} recebido={result.price}")
                return OfferUnavailable(reason='preço divergente')
            try:
                self.offer_cache.set(amount, result.hash, self.settings.offer_cache_ttl)
            except Exception as e:
                logger.warning(f"Cache de ofertas indisponível (set): {e}")
            return result

        logger.warning(f"Oferta indisponível ({result.reason}); seguindo com amount+cart.")
        return result

    def checkout(self, body: Any) -> Dict[str, Any]:
        if not isinstance(body, dict):
            raise ValidationError('body', 'Corpo JSON inválido')

        lines = normalize_cart(body.get('items'))
        customer = parse_customer(body.get('customer'))
        address = parse_address(_address_source(body))
        order = price_order(lines, self.rule, self.settings.min_amount_cents)

        logger.info(
            f"Checkout {order.order_id}: itens={order.total_quantity} subtotal={order.subtotal_minor_units} "
            f"frete={order.surcharge_minor_units} total={order.total_minor_units} "
            f"cliente={mask_email(customer.email)} ({hmac_hash(customer.email)})"
        )

        offer = self.obtain_offer(order)
        payload = build_transaction_payload(
            order, customer, address, offer,
            product_hash=self.settings.paradise_product_hash,
            postback_url=self.settings.postback_url,
            origin=self.settings.checkout_origin,
            metadata=body.get('metadata'),
        )

        raw = self.gateway.create_transaction(payload)
        tx = normalize_transaction(raw)
        if not tx.tx_id and not tx.tx_hash:
            raise GatewayError(502, raw, message='Gateway não retornou o identificador da transação')
        if self.settings.render_qr_locally:
            ensure_qr_image(tx)

        self._record(order, tx)
        logger.info(f"Transação PIX criada order={order.order_id} tx_id={tx.tx_id} tx_hash={tx.tx_hash}")

        return {
            'ok': True,
            'order_id': order.order_id,
            'tx_id': tx.tx_id,
            'tx_hash': tx.tx_hash,
            'status': tx.status,
            'amount': order.total_minor_units,
            'subtotal': order.subtotal_minor_units,
            'surcharge': order.surcharge_minor_units,
            'pix': tx.pix.to_dict() if tx.pix else dict(EMPTY_PIX),
            'raw': raw,
        }

    def _record(self, order: Order, tx: GatewayTransaction) -> None:
        try:
            record = Transaction()
            record.tx_id = tx.tx_id
            record.tx_hash = tx.tx_hash
            record.order_id = order.order_id
            record.amount_cents = order.total_minor_units
            record.status = tx.status
            record.brcode = tx.pix.brcode if tx.pix else None
            record.qr_code_base64 = tx.pix.qr_code_base64 if tx.pix else None
            db.session.add(record)
            db.session.commit()
        except SQLAlchemyError as e:
            # A cobrança já existe no gateway; falhar aqui só perde o registro local
            db.session.rollback()
            logger.critical(f"Falha ao registrar transação tx_id={tx.tx_id} order={order.order_id}: {e}")

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def lookup(self, id_or_hash: str) -> Dict[str, Any]:
        record = Transaction.find(id_or_hash)
        # status terminal no registro sempre veio do gateway (consulta ou webhook confirmado)
        if record is not None and record.status in TERMINAL_STATUSES:
            return {'status': record.status, 'pix': _ledger_pix(record), 'raw': None}

        try:
            raw = self.gateway.get_transaction(id_or_hash)
        except NotFound:
            if record is not None:
                logger.info(f"Transação {sanitize_for_log(id_or_hash)} não achada no gateway; usando registro local.")
                return {'status': record.status, 'pix': _ledger_pix(record), 'raw': None}
            raise

        tx = normalize_transaction(raw)
        if self.settings.render_qr_locally:
            ensure_qr_image(tx)
        if record is not None:
            self._update_record(record, tx.status, tx.pix)

        return {'status': tx.status, 'pix': tx.pix.to_dict() if tx.pix else None, 'raw': tx.raw}

    def _update_record(self, record: Transaction, status: str, pix: Optional[PixCode] = None) -> bool:
        if record.status in TERMINAL_STATUSES and status == 'pending':
            return False
        changed = record.status != status
        record.status = status
        if pix is not None and not record.brcode:
            record.brcode = pix.brcode
            record.qr_code_base64 = pix.qr_code_base64
            changed = True
        if not changed:
            return False
        try:
            db.session.commit()
        except SQLAlchemyError as e:
            db.session.rollback()
            logger.error(f"Falha ao atualizar transação {record.tx_id}: {e}")
            return False
        return True

    # ------------------------------------------------------------------
    # Webhook
    # ------------------------------------------------------------------

    def _confirm_with_gateway(self, record: Transaction, claimed: str) -> Optional[str]:
        # Webhook sem assinatura não basta para marcar como pago: vale o que o gateway responder
        try:
            raw = self.gateway.get_transaction(record.tx_hash or record.tx_id)
        except (GatewayError, NotFound) as e:
            logger.warning(f"Webhook: não foi possível confirmar tx_id={record.tx_id} no gateway: {e}")
            return None
        confirmed = extract_status(raw)
        if confirmed != claimed:
            logger.warning(
                f"Webhook divergente do gateway tx_id={record.tx_id}: "
                f"recebido={sanitize_for_log(claimed)} gateway={confirmed}"
            )
        return confirmed

    def apply_webhook(self, event: Any) -> bool:
        """Aplica o status enviado pelo gateway. Devolve True se algo mudou."""
        if not isinstance(event, dict):
            logger.warning('Webhook: corpo não é um objeto JSON.')
            return False

        tx = normalize_transaction(event)
        status = extract_status(event, default=None)
        if not status or not (tx.tx_hash or tx.tx_id):
            logger.warning('Webhook chamada com payload incompleto.')
            return False

        record = Transaction.find(tx.tx_hash) or Transaction.find(tx.tx_id)
        if record is None:
            logger.warning(f"Webhook: transação não encontrada. tx_hash={sanitize_for_log(tx.tx_hash)}")
            return False

        if status in TERMINAL_STATUSES:
            status = self._confirm_with_gateway(record, status)
            if status is None:
                return False

        changed = self._update_record(record, status)
        logger.info(f"Transação tx_id={record.tx_id} atualizada via webhook para status={sanitize_for_log(status)}")
        return changed
