"""Validation helpers."""

def ensure(condition: bool, message: str, exc_type: type = ValueError) -> None:
    if not condition:
        raise exc_type(message)
