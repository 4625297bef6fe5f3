"""Service layer"""
from streak_engine.services.activity_ingestion import ActivityIngestionService
from streak_engine.services.container import ServiceContainer, build_container

__all__ = [
    "ActivityIngestionService",
    "ServiceContainer",
    "build_container",
]
