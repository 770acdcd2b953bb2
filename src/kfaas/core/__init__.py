from kfaas.core.errors import ErrorKind, KfaasError

__all__ = ["ErrorKind", "KfaasError"]
