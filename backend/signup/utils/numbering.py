"""Human-readable welcome order numbers.

Format:
  WO-{epoch ms}-{6 random base36 chars, upper-case}

The number is a display/support reference. It is not unique-constrained;
the order's uuid is the key.
"""

import secrets
import string
import time

ORDER_PREFIX = "WO"
SUFFIX_LENGTH = 6
_BASE36 = string.digits + string.ascii_uppercase


def generate_order_number(now_ms: int | None = None) -> str:
    if now_ms is None:
        now_ms = int(time.time() * 1000)
    suffix = "".join(secrets.choice(_BASE36) for _ in range(SUFFIX_LENGTH))
    return f"{ORDER_PREFIX}-{now_ms}-{suffix}"
