"""
Consulta de CEP (ViaCEP) só para pré-preencher o formulário.
O resultado nunca entra no payload do gateway.
"""
import logging
from typing import Dict, Optional

import requests

from erros import GatewayError, NotFound, ValidationError
from payload_paradise import only_digits

logger = logging.getLogger(__name__)

VIACEP_URL = 'https://viacep.com.br/ws/{zip}/json/'


def lookup_cep(zip_code: str, session: Optional[requests.Session] = None, timeout: float = 8.0) -> Dict[str, str]:
    digits = only_digits(zip_code)
    if len(digits) != 8:
        raise ValidationError('zip', 'CEP deve ter 8 dígitos')

    http = session or requests
    try:
        resp = http.get(VIACEP_URL.format(zip=digits), timeout=timeout)
        resp.raise_for_status()
        data = resp.json()
    except (requests.RequestException, ValueError) as e:
        logger.warning(f"ViaCEP indisponível: {e}")
        raise GatewayError(502, str(e), message='Falha ao consultar o CEP')

    if not isinstance(data, dict) or data.get('erro'):
        raise NotFound('CEP não encontrado', {'zip': digits})

    return {
        'zip': digits,
        'street': data.get('logradouro') or '',
        'neighborhood': data.get('bairro') or '',
        'city': data.get('localidade') or '',
        'state': data.get('uf') or 'SP',
    }
