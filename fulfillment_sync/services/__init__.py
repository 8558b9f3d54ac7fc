"""Servicios de sincronización con el proveedor de fulfillment."""
