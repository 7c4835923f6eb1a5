from coinpulse.services.ingestion import get_event, record_event, record_events, soft_delete_event

__all__ = ["get_event", "record_event", "record_events", "soft_delete_event"]
