"""
Normalização do carrinho vindo do front.
O preço pode chegar como centavos inteiros, reais decimais ou texto formatado
("R$ 1.234,56"); a saída é sempre CartLine com preço unitário em centavos.
"""
import logging
import math
import re
from dataclasses import dataclass, asdict
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Dict, Iterable, List, Optional

from erros import ValidationError

logger = logging.getLogger(__name__)

# Inteiros a partir deste valor, sem tag de unidade, já são tratados como centavos
MINOR_UNIT_HEURISTIC_THRESHOLD = 1000

MINOR_UNIT_TAGS = {'cents', 'centavos', 'minor'}
MAJOR_UNIT_TAGS = {'reais', 'brl', 'major'}

_THOUSANDS_DOT = re.compile(r'\.(?=\d{3}(?:\D|$))')
_LEADING_INT = re.compile(r'^\s*[+-]?\d+')


@dataclass(frozen=True)
class CartLine:
    id: str
    name: str
    unit_price_minor_units: int
    quantity: int

    @property
    def line_total(self) -> int:
        return self.unit_price_minor_units * self.quantity

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _to_decimal(value: Any) -> Decimal:
    if isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            raise InvalidOperation(value)
        return Decimal(str(value))
    cleaned = re.sub(r'[^\d.,-]', '', str(value))
    cleaned = _THOUSANDS_DOT.sub('', cleaned).replace(',', '.')
    if not cleaned or cleaned in ('-', '.'):
        raise InvalidOperation(value)
    return Decimal(cleaned)


def _reais_to_cents(amount: Decimal) -> int:
    return int((amount * 100).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def normalize_price(value: Any, unit: Optional[str] = None, field: str = 'price') -> int:
    """Converte um preço de representação desconhecida para centavos.

    Com ``unit`` informado (``cents``/``reais``) não há adivinhação. Sem tag vale a
    heurística legada: inteiro >= 1000 (ou texto só com dígitos >= 1000) já está em
    centavos; o resto é valor em reais arredondado para o centavo mais próximo.

    Sem tag a conversão não é idempotente: ``normalize_price(500)`` devolve 50000
    (R$ 500,00). Ao reprocessar um valor que já saiu daqui, passe ``unit='cents'``,
    como ``normalize_line`` faz com ``unit_price_minor_units``.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(field, 'Preço inválido')
    try:
        amount = _to_decimal(value)
    except (InvalidOperation, ValueError):
        raise ValidationError(field, 'Preço inválido')
    if amount < 0:
        raise ValidationError(field, 'Preço não pode ser negativo')

    tag = (unit or '').strip().lower()
    if tag in MINOR_UNIT_TAGS:
        if amount != amount.to_integral_value():
            raise ValidationError(field, 'Preço em centavos deve ser inteiro')
        return int(amount)
    if tag in MAJOR_UNIT_TAGS:
        return _reais_to_cents(amount)
    if tag:
        raise ValidationError(field, f'Unidade de preço desconhecida: {tag}')

    if isinstance(value, (int, float)):
        looks_minor = amount == amount.to_integral_value()
    else:
        looks_minor = not re.search(r'[.,]', str(value)) and amount == amount.to_integral_value()
    if looks_minor and amount >= MINOR_UNIT_HEURISTIC_THRESHOLD:
        return int(amount)
    return _reais_to_cents(amount)


def normalize_quantity(value: Any) -> int:
    if isinstance(value, bool):
        return 1
    if isinstance(value, float):
        if not math.isfinite(value):
            return 1
        return max(1, int(value))
    if isinstance(value, int):
        return max(1, value)
    match = _LEADING_INT.match(str(value if value is not None else ''))
    if not match:
        return 1
    return max(1, int(match.group(0)))


def normalize_line(raw: Any, index: int = 0) -> CartLine:
    if isinstance(raw, CartLine):
        return raw
    if not isinstance(raw, dict):
        raise ValidationError(f'items[{index}]', 'Item do carrinho inválido')

    field = f'items[{index}].price'
    if 'unit_price_minor_units' in raw:
        # já normalizado antes (CartLine.to_dict)
        price = normalize_price(raw['unit_price_minor_units'], unit='cents', field=field)
    elif 'price_cents' in raw:
        price = normalize_price(raw['price_cents'], unit='cents', field=field)
    else:
        value = raw.get('unit_price', raw.get('price'))
        price = normalize_price(value, unit=raw.get('price_unit'), field=field)

    return CartLine(
        id=str(raw.get('id') or f'item-{index + 1}'),
        name=str(raw.get('name') or raw.get('title') or 'Produto'),
        unit_price_minor_units=price,
        quantity=normalize_quantity(raw.get('quantity', 1)),
    )


def normalize_cart(raw_items: Iterable[Any]) -> List[CartLine]:
    if not isinstance(raw_items, (list, tuple)) or not raw_items:
        raise ValidationError('items', 'O carrinho está vazio')
    lines = [normalize_line(raw, i) for i, raw in enumerate(raw_items)]
    logger.debug(f"Carrinho normalizado: {len(lines)} linha(s)")
    return lines
