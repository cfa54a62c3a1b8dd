from .settings import settings, feature_flags, get_bool_env, get_int_env

__all__ = ["settings", "feature_flags", "get_bool_env", "get_int_env"]
