"""Аутентификация запросов Trek API."""
