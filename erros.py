"""
Erros de domínio do checkout.
Cada erro sabe o status HTTP e o corpo JSON que o front recebe, assim nenhuma
exceção chega ao cliente como HTML.
"""
from typing import Any, Dict, Optional


class CheckoutError(Exception):
    status_code = 400
    error = 'checkout_failed'

    def __init__(self, message: str, detail: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    def to_dict(self) -> Dict[str, Any]:
        detail = {'message': self.message}
        detail.update(self.detail)
        return {'ok': False, 'error': self.error, 'detail': detail}


class ValidationError(CheckoutError):
    error = 'validation_error'

    def __init__(self, field: str, message: str):
        super().__init__(message, {'field': field})
        self.field = field


class BelowMinimumAmount(CheckoutError):
    error = 'min_amount'

    def __init__(self, total: int, minimum: int):
        reais = f"{minimum / 100:.2f}".replace('.', ',')
        super().__init__(
            f"O valor da compra precisa ser no mínimo R$ {reais}",
            {'total': total, 'minimum': minimum},
        )
        self.total = total
        self.minimum = minimum


class GatewayError(CheckoutError):
    """Falha do gateway: status não-2xx, corpo ilegível ou erro de transporte."""
    error = 'gateway_error'

    def __init__(self, status: int, detail: Any = None, message: str = 'Falha ao comunicar com o gateway de pagamento'):
        super().__init__(message, {'upstream_status': status, 'upstream': detail})
        self.status = status
        self.upstream_detail = detail
        # 4xx do gateway é espelhado; credenciais (401/403) e 5xx viram 502
        if 400 <= status < 500 and status not in (401, 403):
            self.status_code = status
        else:
            self.status_code = 502


class NotFound(CheckoutError):
    status_code = 404
    error = 'not_found'
