"""
Row Sync Manager - wspólna logika synchronizacji dokumentu z wierszem zdalnym.

Ten moduł obsługuje:
- Pobranie wiersza przy starcie sesji (zdalny wygrywa przy pierwszym ładowaniu)
- Jednorazowy push lokalnego rekordu, gdy wiersza zdalnego brak
- Debounced push po każdym lokalnym zapisie (ostatni snapshot wygrywa)
- Usunięcie wiersza zdalnego po lokalnym resecie
- Typowane wyniki (SyncResult) przekazywane do hooka obserwacji

Błędy sieci są logowane i raportowane, nigdy rzucane. Brak automatycznego
retry - kolejny lokalny zapis niesie najnowszy stan.
"""
from dataclasses import dataclass, field
from datetime import datetime
from threading import Lock
from typing import Optional, Dict, Any, Callable
from loguru import logger

from .remote_api_client import RemoteAPIClient
from ..utils.debouncer import Debouncer


@dataclass
class SyncResult:
    """Wynik pojedynczej operacji synchronizacji"""
    ok: bool
    operation: str              # pull | push | delete
    user_id: Optional[str] = None
    reason: Optional[str] = None
    at: datetime = field(default_factory=datetime.now)


SyncResultHook = Callable[[SyncResult], None]


class RowSyncManager:
    """
    Bazowy menedżer synchronizacji local-first dla jednego wiersza na użytkownika.

    Podklasy dostarczają: rejestrację hooków w swoim store, odczyt/zapis
    snapshotu i serializację.
    """

    log_prefix = "[SYNC]"

    def __init__(
        self,
        api_client: RemoteAPIClient,
        table: str,
        debounce_seconds: float = 0.5,
        on_sync_result: Optional[SyncResultHook] = None
    ):
        """
        Args:
            api_client: Klient REST
            table: Nazwa tabeli zdalnej
            debounce_seconds: Okno ciszy przed wysłaniem zmian
            on_sync_result: Hook obserwacji wywoływany z każdym SyncResult
        """
        self.api_client = api_client
        self.table = table
        self.on_sync_result = on_sync_result
        self.user_id: Optional[str] = None

        self._debouncer = Debouncer(debounce_seconds, self._push_snapshot, name=f"{table}-push")
        self._lock = Lock()
        self._enabled = False

        # Stats
        self.last_sync_time: Optional[datetime] = None
        self.last_result: Optional[SyncResult] = None
        self.sync_count = 0
        self.error_count = 0

        logger.info(f"{self.log_prefix} Initialized for table '{table}' (debounce={debounce_seconds}s)")

    # =========================================================================
    # DO NADPISANIA
    # =========================================================================

    def _register_hooks(self, on_save: Optional[Callable], on_clear: Optional[Callable]):
        raise NotImplementedError

    def _load_local(self) -> Any:
        raise NotImplementedError

    def _apply_remote(self, data: Dict[str, Any]) -> Any:
        """Nadpisz lokalny slot primary danymi zdalnymi; zwróć snapshot"""
        raise NotImplementedError

    def _is_pushable(self, snapshot: Any) -> bool:
        """Czy lokalny snapshot warto wysłać, gdy wiersza zdalnego brak"""
        raise NotImplementedError

    def _serialize(self, snapshot: Any) -> Dict[str, Any]:
        raise NotImplementedError

    # =========================================================================
    # SESJA
    # =========================================================================

    def initialize(self, user_id: str) -> Any:
        """
        Uzgodnienie przy starcie sesji, potem włączenie debounced sync.

        Returns:
            Snapshot obowiązujący po uzgodnieniu
        """
        if self._enabled:
            self.disable()

        self.user_id = user_id
        logger.info(f"{self.log_prefix} Initial sync for user {user_id}...")

        pull = self.api_client.fetch_row(self.table, user_id)
        if not pull.success:
            self._report(SyncResult(ok=False, operation="pull", user_id=user_id, reason=pull.error))
            snapshot = self._load_local()
        elif pull.data:
            try:
                snapshot = self._apply_remote(pull.data)
                self._report(SyncResult(ok=True, operation="pull", user_id=user_id))
                logger.info(f"{self.log_prefix} Remote data applied locally")
            except (KeyError, TypeError, ValueError, AttributeError) as e:
                self._report(SyncResult(ok=False, operation="pull", user_id=user_id,
                                        reason=f"malformed remote data: {e}"))
                snapshot = self._load_local()
        else:
            self._report(SyncResult(ok=True, operation="pull", user_id=user_id))
            snapshot = self._load_local()
            if self._is_pushable(snapshot):
                logger.info(f"{self.log_prefix} No remote data, pushing local record")
                self._push_snapshot(user_id, snapshot)

        self.enable()
        return snapshot

    def enable(self, user_id: Optional[str] = None):
        """
        Zarejestruj hooki store bez uzgadniania z serwerem.

        Args:
            user_id: Użytkownik sesji (domyślnie ustawiony wcześniej przez initialize)
        """
        if user_id:
            self.user_id = user_id
        if not self.user_id:
            raise ValueError("user_id must be set before enabling sync")
        with self._lock:
            self._enabled = True
        self._register_hooks(self._on_local_save, self._on_local_clear)
        logger.debug(f"{self.log_prefix} Sync enabled for user {self.user_id}")

    def disable(self):
        """Wylogowanie: wyrejestruj hooki i anuluj oczekujący push"""
        self._register_hooks(None, None)
        with self._lock:
            self._enabled = False
            self.user_id = None
        if self._debouncer.cancel():
            logger.info(f"{self.log_prefix} Pending push cancelled on sign-out")
        logger.debug(f"{self.log_prefix} Sync disabled")

    def is_enabled(self) -> bool:
        return self._enabled

    def flush(self) -> bool:
        """Wyślij oczekujący push natychmiast (np. przy zamykaniu aplikacji)"""
        return self._debouncer.flush()

    def has_pending_push(self) -> bool:
        return self._debouncer.is_pending()

    # =========================================================================
    # HOOKI STORE
    # =========================================================================

    def _on_local_save(self, snapshot: Any):
        with self._lock:
            if not self._enabled or not self.user_id:
                return
            user_id = self.user_id
        self._debouncer.call(user_id, snapshot)

    def _on_local_clear(self):
        with self._lock:
            user_id = self.user_id if self._enabled else None
        self._debouncer.cancel()
        if not user_id:
            return

        response = self.api_client.delete_row(self.table, user_id)
        self._report(SyncResult(
            ok=response.success, operation="delete", user_id=user_id,
            reason=None if response.success else response.error,
        ))

    def _push_snapshot(self, user_id: str, snapshot: Any) -> SyncResult:
        response = self.api_client.upsert_row(self.table, user_id, self._serialize(snapshot))
        result = SyncResult(
            ok=response.success, operation="push", user_id=user_id,
            reason=None if response.success else response.error,
        )
        self._report(result)
        return result

    # =========================================================================
    # OBSERWACJA
    # =========================================================================

    def _report(self, result: SyncResult):
        self.last_result = result
        if result.ok:
            self.sync_count += 1
            self.last_sync_time = result.at
            logger.debug(f"{self.log_prefix} {result.operation} ok")
        else:
            self.error_count += 1
            logger.warning(f"{self.log_prefix} {result.operation} failed: {result.reason}")

        if self.on_sync_result:
            try:
                self.on_sync_result(result)
            except Exception as e:
                logger.error(f"{self.log_prefix} Sync result hook failed: {e}")

    def get_stats(self) -> Dict[str, Any]:
        """Statystyki synchronizacji"""
        return {
            'table': self.table,
            'enabled': self._enabled,
            'user_id': self.user_id,
            'sync_count': self.sync_count,
            'error_count': self.error_count,
            'last_sync_time': self.last_sync_time.isoformat() if self.last_sync_time else None,
            'pending_push': self.has_pending_push(),
        }
