"""HTTP-маршруты Trek API."""
