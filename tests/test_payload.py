import pytest

from carrinho import CartLine
from erros import ValidationError
from pagamentos_gateway import OfferObtained, OfferUnavailable
from payload_paradise import (
    FALLBACK_ADDRESS, build_cart, build_transaction_payload, parse_address, parse_customer, split_phone,
)
from pedido import SurchargeRule, price_order


@pytest.fixture
def order():
    lines = [
        CartLine(id='p1', name='Camiseta', unit_price_minor_units=4990, quantity=1),
        CartLine(id='p2', name='Boné', unit_price_minor_units=2990, quantity=1),
    ]
    return price_order(lines, SurchargeRule(1500, 3), order_id='ord_1')


@pytest.fixture
def customer():
    return parse_customer({
        'name': ' Maria Silva ',
        'email': 'maria@example.com',
        'document': '123.456.789-09',
        'phone': '+55 (11) 99999-8888',
    })


def test_customer_fields_are_digits_only(customer):
    assert customer.name == 'Maria Silva'
    assert customer.tax_id == '12345678909'
    assert customer.phone == '5511999998888'


@pytest.mark.parametrize('raw, field', [
    (None, 'customer'),
    ({'email': 'a@b.com'}, 'customer.name'),
    ({'name': 'Ana'}, 'customer.email'),
    ({'name': 'Ana', 'email': 'sem-arroba'}, 'customer.email'),
])
def test_missing_required_customer_field(raw, field):
    with pytest.raises(ValidationError) as exc:
        parse_customer(raw)
    assert exc.value.field == field
    assert exc.value.to_dict()['detail']['field'] == field


def test_missing_address_uses_fixed_fallback():
    address = parse_address(None)
    assert address.line1 == FALLBACK_ADDRESS['line1']
    assert address.postal_code == '01311000'
    assert address.city == 'São Paulo'


def test_partial_address_is_filled_field_by_field():
    address = parse_address({'street': 'Rua das Flores', 'zip': '20040-020', 'city': 'Rio de Janeiro', 'state': 'rj'})
    assert address.line1 == 'Rua das Flores'
    assert address.postal_code == '20040020'
    assert address.state == 'RJ'
    assert address.number == FALLBACK_ADDRESS['number']
    assert address.neighborhood == FALLBACK_ADDRESS['neighborhood']


@pytest.mark.parametrize('phone, expected', [
    ('11999998888', '5511999998888'),
    ('5511999998888', '5511999998888'),
    ('55999998888', '5555999998888'),
    ('', '55'),
])
def test_phone_gets_country_prefix(phone, expected):
    assert split_phone(phone) == ('55', expected)


def test_offer_path_references_offer_and_has_no_cart(order, customer):
    payload = build_transaction_payload(
        order, customer, parse_address(None), OfferObtained('off_123'),
        product_hash='prod_anchor', postback_url='https://loja.test/webhooks/paradise',
    )
    assert payload['offer_hash'] == 'off_123'
    assert payload['amount'] == 9480
    assert 'cart' not in payload
    assert payload['postback_url'] == 'https://loja.test/webhooks/paradise'
    assert payload['customer']['document'] == '12345678909'
    assert payload['customer']['country'] == 'br'


def test_fallback_path_sends_cart_without_offer_hash(order, customer):
    payload = build_transaction_payload(
        order, customer, parse_address(None), OfferUnavailable('status 500'), product_hash='prod_anchor',
    )
    assert 'offer_hash' not in payload
    assert 'offer' not in payload
    assert payload['amount'] == order.total_minor_units
    cart_total = sum(entry['unit_price'] * entry['quantity'] for entry in payload['cart'])
    assert cart_total == payload['amount']
    assert payload['cart'][-1]['title'] == 'Frete'


def test_cart_has_no_shipping_line_when_free(customer):
    lines = [CartLine(id='p1', name='Meia', unit_price_minor_units=1000, quantity=3)]
    free = price_order(lines, SurchargeRule(1500, 3), order_id='ord_2')
    cart = build_cart(free, 'prod_anchor')
    assert len(cart) == 1
    assert cart[0]['quantity'] == 3


def test_metadata_keeps_client_fields_and_adds_order_reference(order, customer):
    payload = build_transaction_payload(
        order, customer, parse_address(None), OfferUnavailable(), product_hash='prod_anchor',
        metadata={'origem': 'site', 'campanha': 'natal'},
    )
    assert payload['metadata']['order_id'] == 'ord_1'
    assert payload['metadata']['origem'] == 'site'
    assert payload['metadata']['campanha'] == 'natal'
    assert payload['metadata']['shipping_cents'] == '1500'
    assert 'postback_url' not in payload


def test_builder_is_pure(order, customer):
    address = parse_address(None)
    first = build_transaction_payload(order, customer, address, OfferUnavailable(), product_hash='p')
    second = build_transaction_payload(order, customer, address, OfferUnavailable(), product_hash='p')
    assert first == second
