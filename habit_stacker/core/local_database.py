"""
Local Database Module - SQLite Local-First Storage
Lokalna baza klucz/wartość dla rekordu nawyku i stanu rozmowy.

Każdy logiczny dokument (HabitData, stan rozmowy) zajmuje dwa sloty:
- primary: aktualna kopia
- backup: kopia zapasowa + znacznik czasu ostatniego backupu
"""
import sqlite3
from pathlib import Path
from datetime import datetime
from typing import Optional, List
from loguru import logger


class KeyValueDatabase:
    """
    Lokalna baza danych SQLite z jedną tabelą kv_store.
    Błędy zapisu/odczytu są logowane, nie rzucane wyżej.
    """

    def __init__(self, db_path: Path):
        """
        Inicjalizacja lokalnej bazy danych

        Args:
            db_path: Ścieżka do pliku bazy SQLite
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_database()
        logger.info(f"[LOCAL DB] Initialized at {self.db_path}")

    def _get_connection(self) -> sqlite3.Connection:
        """Utwórz połączenie z bazą danych"""
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row  # Wyniki jako słowniki
        return conn

    def _init_database(self):
        """Inicjalizuj strukturę bazy danych"""
        with self._get_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS kv_store (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)
            conn.commit()

    def get_value(self, key: str) -> Optional[str]:
        """
        Pobierz wartość dla klucza.

        Returns:
            Zapisany tekst lub None (brak klucza albo błąd bazy)
        """
        try:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute("SELECT value FROM kv_store WHERE key = ?", (key,))
                row = cursor.fetchone()
                return row['value'] if row else None
        except sqlite3.Error as e:
            logger.error(f"[LOCAL DB] Failed to read '{key}': {e}")
            return None

    def set_value(self, key: str, value: str) -> bool:
        """
        Zapisz wartość (INSERT OR REPLACE).

        Returns:
            True jeśli zapis się udał
        """
        try:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                cursor.execute("""
                    INSERT INTO kv_store (key, value, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        value = excluded.value,
                        updated_at = excluded.updated_at
                """, (key, value, datetime.now().isoformat()))
                conn.commit()
                return True
        except sqlite3.Error as e:
            logger.error(f"[LOCAL DB] Failed to write '{key}': {e}")
            return False

    def delete_keys(self, keys: List[str]) -> bool:
        """Usuń wiele kluczy jednocześnie"""
        if not keys:
            return True
        try:
            with self._get_connection() as conn:
                cursor = conn.cursor()
                placeholders = ",".join("?" for _ in keys)
                cursor.execute(f"DELETE FROM kv_store WHERE key IN ({placeholders})", keys)
                conn.commit()
                return True
        except sqlite3.Error as e:
            logger.error(f"[LOCAL DB] Failed to delete {keys}: {e}")
            return False


class SlotRepository:
    """
    Repozytorium dwóch slotów (primary/backup) dla jednego dokumentu JSON.

    Zapis zawsze nadpisuje oba sloty tym samym payloadem i odnotowuje
    znacznik czasu backupu. Slot backup jest czytany tylko przez ścieżkę
    przywracania.
    """

    def __init__(self, database: KeyValueDatabase, primary_key: str, backup_key: str, timestamp_key: str):
        self.database = database
        self.primary_key = primary_key
        self.backup_key = backup_key
        self.timestamp_key = timestamp_key

    def read_primary(self) -> Optional[str]:
        return self.database.get_value(self.primary_key)

    def read_backup(self) -> Optional[str]:
        return self.database.get_value(self.backup_key)

    def read_backup_timestamp(self) -> Optional[str]:
        return self.database.get_value(self.timestamp_key)

    def write(self, payload: str) -> bool:
        """
        Zapisz payload do slotu primary, potem do backupu.

        Returns:
            True jeśli slot primary został zapisany
        """
        if not self.database.set_value(self.primary_key, payload):
            return False

        if self.database.set_value(self.backup_key, payload):
            self.database.set_value(self.timestamp_key, datetime.now().astimezone().isoformat())
        else:
            logger.warning(f"[LOCAL DB] Primary '{self.primary_key}' saved but backup write failed")
        return True

    def restore(self) -> Optional[str]:
        """
        Skopiuj backup do slotu primary.

        Returns:
            Przywrócony payload lub None jeśli backupu brak
        """
        backup = self.read_backup()
        if backup is None:
            return None
        if not self.database.set_value(self.primary_key, backup):
            return None
        logger.info(f"[LOCAL DB] Restored '{self.primary_key}' from backup")
        return backup

    def clear_backup(self) -> bool:
        return self.database.delete_keys([self.backup_key, self.timestamp_key])

    def clear_all(self) -> bool:
        return self.database.delete_keys([self.primary_key, self.backup_key, self.timestamp_key])
