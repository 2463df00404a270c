"""
Debouncer - opóźnione wywołanie z oknem ciszy (trailing debounce)

Każde call() restartuje timer; po upływie okna wywoływany jest callback
z argumentami z OSTATNIEGO call(). Pośrednie wywołania przepadają.
"""
from threading import Timer, Lock
from typing import Any, Callable, Optional, Tuple
from loguru import logger


class Debouncer:
    """Trailing debounce oparty na threading.Timer"""

    def __init__(self, wait_seconds: float, callback: Callable[..., Any], name: str = "Debouncer"):
        """
        Args:
            wait_seconds: Długość okna ciszy w sekundach
            callback: Funkcja wywoływana po upływie okna
            name: Nazwa wątku timera (logi)
        """
        self.wait_seconds = wait_seconds
        self.callback = callback
        self.name = name

        self._lock = Lock()
        self._timer: Optional[Timer] = None
        self._pending: Optional[Tuple[Any, ...]] = None
        self._generation = 0

    def call(self, *args: Any) -> None:
        """Zaplanuj wywołanie (restartuje okno, ostatnie argumenty wygrywają)"""
        with self._lock:
            if self._timer is not None:
                self._timer.cancel()
            self._generation += 1
            self._pending = args
            self._timer = Timer(self.wait_seconds, self._fire, args=(self._generation,))
            self._timer.daemon = True
            self._timer.name = self.name
            self._timer.start()

    def cancel(self) -> bool:
        """
        Anuluj oczekujące wywołanie.

        Returns:
            True jeśli coś czekało na wysłanie
        """
        with self._lock:
            was_pending = self._pending is not None
            self._reset_locked()
        if was_pending:
            logger.debug(f"[{self.name}] Pending call cancelled")
        return was_pending

    def flush(self) -> bool:
        """
        Wykonaj oczekujące wywołanie natychmiast (w bieżącym wątku).

        Returns:
            True jeśli callback został wywołany
        """
        with self._lock:
            args = self._pending
            self._reset_locked()
        if args is None:
            return False
        self.callback(*args)
        return True

    def is_pending(self) -> bool:
        with self._lock:
            return self._pending is not None

    def _reset_locked(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
        self._timer = None
        self._pending = None
        # Timer, który już wystartował, zobaczy nową generację i nic nie zrobi
        self._generation += 1

    def _fire(self, generation: int) -> None:
        with self._lock:
            if generation != self._generation or self._pending is None:
                return
            args = self._pending
            self._pending = None
            self._timer = None

        try:
            self.callback(*args)
        except Exception as e:
            logger.error(f"[{self.name}] Debounced callback failed: {e}")
