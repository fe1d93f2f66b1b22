# Helpers para não vazar dados do comprador (e-mail, CPF) nem IPs nos logs
import hashlib
import hmac
import ipaddress
import os


def _get_salt():
    # LOG_HASH_SALT separado do SECRET_KEY permite correlacionar logs entre deploys
    return os.getenv('LOG_HASH_SALT') or os.getenv('SECRET_KEY', 'dev_key')


def hmac_hash(value, length: int = 10) -> str:
    """Hash curto e estável de um identificador (e-mail, CPF) para correlação de logs."""
    if value is None or value == '':
        return '-'
    key = _get_salt().encode('utf-8')
    return hmac.new(key, str(value).strip().lower().encode('utf-8'), hashlib.sha256).hexdigest()[:length]


def mask_email(email: str) -> str:
    # maria.silva@example.com -> m***@example.com
    if not email or '@' not in email:
        return '***'
    user, domain = email.rsplit('@', 1)
    return f"{user[:1]}***@{domain}"


def mask_ip(ip: str) -> str:
    """IPv4 fica só com a /24 (203.0.113.xxx); IPv6 só com o prefixo /48."""
    if not ip:
        return ''
    try:
        addr = ipaddress.ip_address(ip.strip())
    except ValueError:
        return 'ip-invalido'
    if addr.version == 4:
        return str(addr).rsplit('.', 1)[0] + '.xxx'
    prefix = addr.exploded.split(':')[:3]
    return ':'.join(group.lstrip('0') or '0' for group in prefix) + '::xxxx'


# caracteres de controle viram escape visível; \n forjado no webhook não abre linha nova no log
_LOG_ESCAPES = {code: f'\\x{code:02x}' for code in list(range(32)) + [127]}
_LOG_ESCAPES.update({ord('\n'): '\\n', ord('\r'): '\\r', ord('\t'): ' '})


def sanitize_for_log(value, maxlen: int = 120) -> str:
    text = str(value).translate(_LOG_ESCAPES)
    if len(text) > maxlen:
        return f"{text[:maxlen]}... (+{len(text) - maxlen})"
    return text
