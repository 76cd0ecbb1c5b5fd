"""Core module - pipeline de telemetría.

Estructura:
- domain/      → Vocabularios del protocolo y árbol de estado agregado
- validation/  → Validación de frames
- errors.py    → Excepciones y política de errores fatales
"""
