"""
Montagem do corpo de transação PIX no formato esperado pela Paradise.
Transformação pura: não faz chamadas de rede nem grava nada.
"""
import re
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

from erros import ValidationError
from pedido import Order
from pagamentos_gateway import OfferObtained, OfferResult

DEFAULT_COUNTRY_CODE = '55'

# Endereço fixo usado quando o front não manda o campo (o gateway rejeita vazio)
FALLBACK_ADDRESS = {
    'line1': 'Av. Paulista',
    'number': '1000',
    'complement': '',
    'neighborhood': 'Bela Vista',
    'city': 'São Paulo',
    'state': 'SP',
    'postal_code': '01311000',
    'country': 'BR',
}

_EMAIL = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')


def only_digits(value: Any) -> str:
    return re.sub(r'\D', '', str(value or ''))


@dataclass(frozen=True)
class Customer:
    name: str
    email: str
    tax_id: str = ''
    phone: str = ''


@dataclass(frozen=True)
class Address:
    line1: str
    number: str
    complement: str
    neighborhood: str
    city: str
    state: str
    postal_code: str
    country: str


def parse_customer(raw: Any) -> Customer:
    if not isinstance(raw, dict):
        raise ValidationError('customer', 'Dados do cliente são obrigatórios')
    name = str(raw.get('name') or '').strip()
    email = str(raw.get('email') or '').strip()
    if not name:
        raise ValidationError('customer.name', 'Nome do cliente é obrigatório')
    if not email or not _EMAIL.match(email):
        raise ValidationError('customer.email', 'E-mail do cliente inválido')
    return Customer(
        name=name,
        email=email,
        tax_id=only_digits(raw.get('document') or raw.get('tax_id') or raw.get('cpf')),
        phone=only_digits(raw.get('phone')),
    )


def parse_address(raw: Optional[Dict[str, Any]]) -> Address:
    """Preenche campo a campo com o endereço fixo o que não veio do front."""
    raw = raw if isinstance(raw, dict) else {}
    aliases = {
        'line1': ('line1', 'street', 'street_name', 'logradouro'),
        'number': ('number', 'numero'),
        'complement': ('complement', 'complemento'),
        'neighborhood': ('neighborhood', 'bairro'),
        'city': ('city', 'cidade'),
        'state': ('state', 'uf', 'estado'),
        'postal_code': ('postal_code', 'zip', 'zip_code', 'cep'),
        'country': ('country',),
    }
    values = {}
    for field, keys in aliases.items():
        value = next((str(raw[k]).strip() for k in keys if raw.get(k) not in (None, '')), '')
        if field == 'postal_code':
            value = only_digits(value)
        values[field] = value or FALLBACK_ADDRESS[field]
    values['state'] = values['state'].upper()
    values['country'] = values['country'].upper()
    return Address(**values)


def split_phone(phone: str):
    digits = only_digits(phone)
    if digits.startswith(DEFAULT_COUNTRY_CODE) and len(digits) > 11:
        return DEFAULT_COUNTRY_CODE, digits
    return DEFAULT_COUNTRY_CODE, f"{DEFAULT_COUNTRY_CODE}{digits}"


def build_customer(customer: Customer, address: Address) -> Dict[str, Any]:
    country_code, phone_number = split_phone(customer.phone)
    return {
        'name': customer.name,
        'email': customer.email,
        'document': customer.tax_id,
        'phone_number': phone_number,
        'phone_country_code': country_code,
        'zip_code': address.postal_code,
        'street_name': address.line1,
        'number': address.number,
        'complement': address.complement,
        'neighborhood': address.neighborhood,
        'city': address.city,
        'state': address.state,
        'country': address.country.lower(),
    }


def build_cart(order: Order, product_hash: str) -> List[Dict[str, Any]]:
    """Uma entrada por linha mais a linha de frete; a soma bate com order.total."""
    cart = [
        {
            'product_hash': product_hash,
            'title': line.name,
            'price': line.unit_price_minor_units,
            'unit_price': line.unit_price_minor_units,
            'quantity': line.quantity,
            'split': False,
        }
        for line in order.items
    ]
    if order.surcharge_minor_units:
        cart.append({
            'product_hash': product_hash,
            'title': 'Frete',
            'price': order.surcharge_minor_units,
            'unit_price': order.surcharge_minor_units,
            'quantity': 1,
            'split': False,
        })
    return cart


def build_transaction_payload(order: Order, customer: Customer, address: Address, offer: OfferResult,
                              product_hash: str, postback_url: str = '', origin: str = 'hostinger',
                              metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    client_metadata = metadata if isinstance(metadata, dict) else {}
    payload = {
        'payment_method': 'pix',
        'amount': order.total_minor_units,
        'installments': 1,
        'product_hash': product_hash,
        'customer': build_customer(customer, address),
        'shipping': {
            'method': 'Normal',
            'amount': order.surcharge_minor_units,
            'address': asdict(address),
        },
        'metadata': {
            **{str(k): v for k, v in client_metadata.items()},
            'order_id': order.order_id,
            'origem': client_metadata.get('origem') or origin,
            'shipping_cents': str(order.surcharge_minor_units),
        },
    }
    if postback_url:
        payload['postback_url'] = postback_url

    if isinstance(offer, OfferObtained):
        payload['offer_hash'] = offer.hash
        payload['quantity'] = 1
    else:
        payload['cart'] = build_cart(order, product_hash)
    return payload
