"""
Acceso a datos del motor de sincronización.

- ConnDB: gestión de conexiones a la base de datos
- SyncConfigStore / SyncRecordStore: persistencia de configuración y registros
- TokenManager / FulfillmentAPIClient: acceso autenticado al proveedor
"""

from fulfillment_sync.db.connection import ConnDB, close_database, get_db_connection, initialize_database

__all__ = [
    "ConnDB",
    "get_db_connection",
    "initialize_database",
    "close_database",
]
