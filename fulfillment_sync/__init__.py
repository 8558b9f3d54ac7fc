"""
Fulfillment Sync Engine.

Sincronización de órdenes, inventario y tracking entre una plataforma de
comercio y un proveedor de fulfillment externo.
"""

__version__ = "0.1.0"
