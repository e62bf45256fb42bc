"""
IP address helpers for the jail and rule evaluation code.
"""
import ipaddress
import logging

logger = logging.getLogger('security_guard')

LOCAL_NETWORKS = [
    ipaddress.ip_network('127.0.0.0/8'),
    ipaddress.ip_network('10.0.0.0/8'),
    ipaddress.ip_network('172.16.0.0/12'),
    ipaddress.ip_network('192.168.0.0/16'),
    ipaddress.ip_network('169.254.0.0/16'),
    ipaddress.ip_network('::1/128'),
    ipaddress.ip_network('fe80::/10'),
    ipaddress.ip_network('fec0::/10'),
]


def parse_ip(ip):
    """Return an ip_address object, unwrapping IPv4-mapped IPv6, or None"""
    try:
        address = ipaddress.ip_address(str(ip).strip())
    except ValueError:
        return None
    if address.version == 6 and address.ipv4_mapped is not None:
        return address.ipv4_mapped
    return address


def is_local_ip(ip):
    """
    True for loopback, RFC 1918, link-local and site-local addresses, and
    for any IPv4-mapped IPv6 address (those only show up from local sockets).

    Unparseable input is not treated as local.
    """
    if not ip:
        return False

    raw = str(ip).strip().lower()
    if raw.startswith('::ffff:'):
        return True

    address = parse_ip(raw)
    if address is None:
        return False
    return any(
        address.version == network.version and address in network
        for network in LOCAL_NETWORKS
    )


def ip_in_cidr(ip, cidr):
    """
    Check whether `ip` falls inside `cidr`.

    Mismatched address families and malformed input return False.
    """
    address = parse_ip(ip)
    if address is None:
        return False
    try:
        network = ipaddress.ip_network(cidr.strip(), strict=False)
    except ValueError as e:
        logger.warning(f"Invalid CIDR '{cidr}': {e}")
        return False
    if address.version != network.version:
        return False
    return address in network
