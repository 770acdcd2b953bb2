from kfaas.scheduling.yunikorn import YunikornQueueRegistrar, add_service_queue

__all__ = ["YunikornQueueRegistrar", "add_service_queue"]
