"""
Polling do status de uma transação PIX até ela ficar paga.
Falhas transitórias (rede, gateway fora, transação ainda não indexada) não
encerram o polling; só status terminal, parada externa ou limite de tentativas.
"""
import logging
import time
from typing import Any, Callable, Dict, Optional

import requests

from erros import GatewayError, NotFound
from normalizacao import TERMINAL_STATUSES

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 2.5

TRANSIENT_ERRORS = (requests.RequestException, GatewayError, NotFound)


def poll_transaction(fetch: Callable[[str], Dict[str, Any]], tx_id: str, interval: float = DEFAULT_INTERVAL,
                     should_stop: Optional[Callable[[], bool]] = None, max_attempts: Optional[int] = None,
                     sleep: Callable[[float], None] = time.sleep,
                     on_update: Optional[Callable[[Dict[str, Any]], None]] = None) -> Optional[Dict[str, Any]]:
    """Chama ``fetch(tx_id)`` a cada ``interval`` segundos.

    Devolve a última resposta obtida (ou None se nenhuma chamada deu certo).
    """
    last = None
    attempt = 0
    while True:
        if should_stop is not None and should_stop():
            logger.info(f"Polling de {tx_id} interrompido.")
            return last

        attempt += 1
        try:
            last = fetch(tx_id)
        except TRANSIENT_ERRORS as e:
            logger.debug(f"Polling de {tx_id}: falha transitória na tentativa {attempt}: {e}")
        else:
            if on_update is not None:
                on_update(last)
            status = (last or {}).get('status')
            if status in TERMINAL_STATUSES:
                logger.info(f"Transação {tx_id} chegou ao status terminal {status}.")
                return last

        if max_attempts is not None and attempt >= max_attempts:
            return last
        sleep(interval)
