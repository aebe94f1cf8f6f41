"""
ChainTrace API Dependencies

Factories for the anomaly detector and the custody history source. Both
are built from an explicit ``Settings`` object; the cached providers below
give one instance per process and are overridden in tests.
"""

from functools import lru_cache

from core.config import Settings, get_settings
from integrations.base import HistorySourceType, LedgerHistorySource, get_source
from ml.anomaly import AnomalyDetectionSystem


def build_detector(settings: Settings) -> AnomalyDetectionSystem:
    detector = AnomalyDetectionSystem(
        threshold=settings.anomaly_detection_threshold,
        model_path=settings.anomaly_model_path,
    )
    if settings.enable_ai_monitoring:
        detector.initialize()
    return detector


def build_history_source(settings: Settings) -> LedgerHistorySource:
    return get_source(
        HistorySourceType(settings.history_source),
        topic_id=settings.ledger_topic_id,
        config={
            "mirror_node_url": settings.mirror_node_url,
            "timeout_seconds": settings.mirror_request_timeout_seconds,
            "history_limit": settings.mirror_history_limit,
            "chunk_cache_max_messages": settings.chunk_cache_max_messages,
            "chunk_cache_ttl_seconds": settings.chunk_cache_ttl_seconds,
        },
    )


@lru_cache
def get_detector() -> AnomalyDetectionSystem:
    """Process-wide detector."""
    return build_detector(get_settings())


@lru_cache
def get_history_source() -> LedgerHistorySource:
    """Process-wide history source."""
    return build_history_source(get_settings())
