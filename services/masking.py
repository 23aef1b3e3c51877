import re
from typing import Any, Dict, Optional

SENSITIVE_CONFIGURATION_KEYS = ("cardNumber", "accountNumber", "routingNumber")

# Every digit that still has four digits after it
_MASKABLE_DIGIT = re.compile(r"\d(?=\d{4})")


def mask_value(value: str) -> str:
    """Mask all but the last four digits; values of four characters or fewer pass through."""
    if len(value) <= 4:
        return value
    return _MASKABLE_DIGIT.sub("*", value)


def mask_configuration(configuration: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Return a masked copy of a payment method configuration for display."""
    masked = dict(configuration or {})
    for key in SENSITIVE_CONFIGURATION_KEYS:
        value = masked.get(key)
        if isinstance(value, str):
            masked[key] = mask_value(value)
    return masked
