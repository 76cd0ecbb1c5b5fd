"""Monitoring: métricas Prometheus, contadores del hub y límites de recursos."""
