from paperfix.auth.token import TokenPayload, create_access_token, get_current_user, verify_token

__all__ = ["TokenPayload", "create_access_token", "get_current_user", "verify_token"]
