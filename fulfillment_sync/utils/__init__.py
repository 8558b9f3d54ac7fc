"""Utilidades compartidas: errores, reintentos y locks de jobs."""
