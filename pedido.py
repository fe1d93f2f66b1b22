"""
Cálculo do pedido: subtotal, taxa fixa de frete e total em centavos.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import List

from carrinho import CartLine
from erros import BelowMinimumAmount

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SurchargeRule:
    """Frete fixo cobrado enquanto a quantidade total de itens for menor que o limite."""
    flat_minor_units: int = 1500
    free_from_quantity: int = 3

    def surcharge_for(self, total_quantity: int) -> int:
        return self.flat_minor_units if total_quantity < self.free_from_quantity else 0


@dataclass(frozen=True)
class Order:
    order_id: str
    items: List[CartLine] = field(default_factory=list)
    subtotal_minor_units: int = 0
    surcharge_minor_units: int = 0
    total_minor_units: int = 0

    @property
    def total_quantity(self) -> int:
        return sum(line.quantity for line in self.items)

    @property
    def title(self) -> str:
        return f"Pedido {self.order_id} - {self.total_quantity} itens"


def new_order_id() -> str:
    return f"ord_{int(time.time() * 1000)}"


def price_order(lines: List[CartLine], rule: SurchargeRule = SurchargeRule(), minimum_amount: int = 500,
                order_id: str = None) -> Order:
    subtotal = sum(line.line_total for line in lines)
    total_quantity = sum(line.quantity for line in lines)
    surcharge = rule.surcharge_for(total_quantity)
    total = subtotal + surcharge

    if total < minimum_amount:
        logger.info(f"Pedido abaixo do mínimo do gateway: total={total} minimo={minimum_amount}")
        raise BelowMinimumAmount(total, minimum_amount)

    return Order(
        order_id=order_id or new_order_id(),
        items=list(lines),
        subtotal_minor_units=subtotal,
        surcharge_minor_units=surcharge,
        total_minor_units=total,
    )
