from kfaas.auth.oidc import OIDCManager, TokenCache, UserInfo, get_groups

__all__ = ["OIDCManager", "TokenCache", "UserInfo", "get_groups"]
