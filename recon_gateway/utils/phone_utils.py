"""Phone number (MSISDN) normalization"""

import re
from typing import Optional

DEFAULT_COUNTRY_CODE = "254"


def normalize_msisdn(raw: str | None, country_code: str = DEFAULT_COUNTRY_CODE) -> Optional[str]:
    """
    Normalize a phone number to international digits without a leading '+'.

    Examples (country_code="254"):
        "0712 345 678"     -> "254712345678"
        "+254-712-345678"  -> "254712345678"
        "712345678"        -> "254712345678"

    Masked numbers from statement exports ("2547****678") and anything without
    digits return None so they never take part in phone matching.
    """
    if not raw:
        return None
    if "*" in raw:
        return None

    digits = re.sub(r"\D", "", raw)
    if not digits:
        return None

    if digits.startswith("00"):
        digits = digits[2:]
    elif digits.startswith("0"):
        digits = country_code + digits[1:]
    elif not digits.startswith(country_code) and len(digits) == 9:
        digits = country_code + digits

    return digits
