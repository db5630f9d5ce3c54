import re

ADDRESS_PATTERN = re.compile(r"0x[0-9a-fA-F]{40}")


def is_valid_address(value) -> bool:
    """True iff value is 0x followed by exactly 40 hex digits (any case)."""
    if not isinstance(value, str):
        return False
    return ADDRESS_PATTERN.fullmatch(value) is not None


def normalize_address(value: str) -> str:
    return value.lower()
