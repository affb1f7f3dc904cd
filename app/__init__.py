"""Loyalty program push notification service."""
