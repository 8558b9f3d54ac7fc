"""Configuración, ciclo de vida y scheduling de la aplicación."""
