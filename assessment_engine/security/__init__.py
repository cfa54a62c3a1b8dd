"""
Principal extraction for the session gateway.
"""
from assessment_engine.security.principal import (
    Principal,
    create_access_token,
    decode_token,
    get_current_principal,
)

__all__ = ["Principal", "create_access_token", "decode_token", "get_current_principal"]
