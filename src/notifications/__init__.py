# src/notifications/__init__.py
"""Outbox relay: claims durable notification events and fans them out to delivery channels."""
