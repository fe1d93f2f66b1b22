import pytest

from carrinho import CartLine
from erros import BelowMinimumAmount
from pedido import SurchargeRule, price_order

RULE = SurchargeRule(flat_minor_units=1500, free_from_quantity=3)


def line(price, qty=1, id='p'):
    return CartLine(id=id, name='Produto', unit_price_minor_units=price, quantity=qty)


def test_two_items_below_threshold_pay_flat_shipping():
    order = price_order([line(1000), line(2000, id='q')], RULE)
    assert order.subtotal_minor_units == 3000
    assert order.surcharge_minor_units == 1500
    assert order.total_minor_units == 4500


def test_threshold_quantity_gets_free_shipping():
    order = price_order([line(1000, qty=3)], RULE)
    assert order.surcharge_minor_units == 0
    assert order.total_minor_units == 3000


@pytest.mark.parametrize('quantities', [[1], [2], [1, 1], [3], [1, 2], [5, 1]])
def test_total_is_subtotal_plus_surcharge(quantities):
    lines = [line(700, qty=q, id=str(i)) for i, q in enumerate(quantities)]
    order = price_order(lines, RULE)
    assert order.total_minor_units == order.subtotal_minor_units + order.surcharge_minor_units
    expected = 1500 if sum(quantities) < 3 else 0
    assert order.surcharge_minor_units == expected


def test_below_gateway_minimum_is_rejected():
    no_shipping = SurchargeRule(flat_minor_units=0, free_from_quantity=3)
    with pytest.raises(BelowMinimumAmount) as exc:
        price_order([line(499)], no_shipping, minimum_amount=500)
    assert exc.value.total == 499
    assert exc.value.status_code == 400
    assert exc.value.to_dict()['error'] == 'min_amount'


def test_surcharge_counts_towards_minimum():
    order = price_order([line(100)], RULE, minimum_amount=500)
    assert order.total_minor_units == 1600


def test_order_id_is_time_based_and_title_mentions_quantity():
    order = price_order([line(1000, qty=2)], RULE)
    assert order.order_id.startswith('ord_')
    assert order.title.endswith('2 itens')
