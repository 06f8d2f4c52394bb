"""
Attendance code generation and campus network matching.
"""

import secrets
from typing import Callable, Iterable, Optional

CODE_MIN = 100000
CODE_MAX_EXCLUSIVE = 1000000

_system_random = secrets.SystemRandom()


def secure_randint(low: int, high_exclusive: int) -> int:
    return _system_random.randrange(low, high_exclusive)


def generate_attendance_code(randint: Callable[[int, int], int] = None) -> str:
    """
    Draw a six-digit code uniformly from [100000, 1000000).

    Args:
        randint: Integer source taking (low, high_exclusive); defaults to the
            operating system's cryptographically secure generator
    """
    randint = randint or secure_randint
    return str(randint(CODE_MIN, CODE_MAX_EXCLUSIVE))


def _leading_octets(address: str, count: int = 2) -> list:
    return address.strip().split(".")[:count]


def is_on_campus_network(ip_address: Optional[str], campus_ranges: Iterable[str]) -> bool:
    """
    Coarse campus check: the first two dotted segments of the caller IP must
    equal the first two segments of some range's base address. The prefix
    length after "/" is ignored, so "10.20.0.0/24" accepts all of 10.20.x.x.
    """
    if not ip_address:
        return False
    ip_prefix = _leading_octets(ip_address)
    if len(ip_prefix) < 2:
        return False
    for campus_range in campus_ranges:
        base_ip = campus_range.split("/", 1)[0]
        if base_ip and _leading_octets(base_ip) == ip_prefix:
            return True
    return False
