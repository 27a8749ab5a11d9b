"""Ingestion services."""

from inventory_ingestion.services.ingestor import WebhookIngestor

__all__ = ["WebhookIngestor"]
