"""
Core Package
Konfiguracja, lokalna baza, klient REST i bazowa synchronizacja
"""

from .config import config, get_config
from .exceptions import HabitStackerError, HabitValidationError, CheckInValidationError
from .local_database import KeyValueDatabase, SlotRepository
from .remote_api_client import RemoteAPIClient, APIResponse, create_api_client, is_network_available
from .sync_manager_base import RowSyncManager, SyncResult

__all__ = [
    'config',
    'get_config',
    'HabitStackerError',
    'HabitValidationError',
    'CheckInValidationError',
    'KeyValueDatabase',
    'SlotRepository',
    'RemoteAPIClient',
    'APIResponse',
    'create_api_client',
    'is_network_available',
    'RowSyncManager',
    'SyncResult',
]
