from kfaas.webhooks.registrar import MinIOAdminClient, WebhookRegistrar

__all__ = ["MinIOAdminClient", "WebhookRegistrar"]
