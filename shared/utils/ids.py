import re
from typing import Optional

_DURABLE_ID = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")


def is_durable_id(value: Optional[str]) -> bool:
    """True when value has the 36-character hyphenated hex shape of a stored id."""
    if not value or not isinstance(value, str):
        return False
    return bool(_DURABLE_ID.match(value))
