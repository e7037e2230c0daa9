"""FarmPass dashboard: REST backend for push subscription management."""
