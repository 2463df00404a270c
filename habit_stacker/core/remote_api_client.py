"""
API Client dla zdalnego magazynu wierszy (Supabase REST / PostgREST).

Ten moduł odpowiada za komunikację HTTP z tabelami, w których każdy
użytkownik ma dokładnie jeden wiersz:
    user_id (unique) | data (JSON) | updated_at

Obsługuje:
- Pobieranie wiersza użytkownika
- Upsert (on_conflict=user_id)
- Usuwanie wiersza
- Automatyczne odświeżanie tokena po wygaśnięciu
"""

import socket

import requests
from datetime import datetime, timezone
from typing import Optional, Dict, Any, Callable
from loguru import logger


class APIResponse:
    """Wynik operacji na wierszu: data przy sukcesie, error przy porażce"""

    def __init__(self, success: bool, data: Any = None, error: Optional[str] = None, status_code: Optional[int] = None):
        self.success = success
        self.data = data
        self.error = error
        self.status_code = status_code


class RemoteAPIClient:
    """
    Klient REST dla tabel habit_data i conversation_state.

    Błędy sieci i HTTP nigdy nie wychodzą poza klienta - zawsze wracają
    jako APIResponse(success=False).
    """

    def __init__(
        self,
        base_url: str,
        api_key: str,
        auth_token: Optional[str] = None,
        refresh_token: Optional[str] = None,
        on_token_refreshed: Optional[Callable[[str, str], None]] = None,
        timeout: int = 10
    ):
        """
        Inicjalizacja API client.

        Args:
            base_url: URL projektu (np. "https://xyz.supabase.co")
            api_key: Publiczny klucz API (nagłówek apikey)
            auth_token: Access token zalogowanego użytkownika (opcjonalnie)
            refresh_token: Refresh token do odświeżania access token (opcjonalnie)
            on_token_refreshed: Callback (new_access_token, new_refresh_token) -> None
            timeout: Timeout requestów w sekundach
        """
        self.base_url = base_url.rstrip('/')
        self.api_key = api_key
        self.auth_token = auth_token
        self.refresh_token = refresh_token
        self.on_token_refreshed = on_token_refreshed
        self.timeout = timeout
        self.session = requests.Session()

        # Domyślne headers
        self.session.headers.update({
            'Content-Type': 'application/json',
            'Accept': 'application/json',
            'apikey': api_key,
        })
        self.session.headers['Authorization'] = f'Bearer {auth_token or api_key}'

        logger.info(f"[REMOTE] Client initialized for {self.base_url}")

    def set_auth_token(self, token: str):
        """Ustaw token autentykacji"""
        self.auth_token = token
        self.session.headers['Authorization'] = f'Bearer {token}'
        logger.debug("[REMOTE] Auth token updated")

    def _try_refresh_token(self) -> bool:
        """Wymień refresh token na nowy access token (Supabase /auth/v1/token)"""
        if not self.refresh_token:
            logger.warning("[REMOTE] Cannot refresh token: no refresh_token available")
            return False

        try:
            response = requests.post(
                f"{self.base_url}/auth/v1/token",
                params={'grant_type': 'refresh_token'},
                json={'refresh_token': self.refresh_token},
                headers={'Content-Type': 'application/json', 'apikey': self.api_key},
                timeout=self.timeout
            )
            tokens = response.json() if response.status_code == 200 else {}
        except (requests.exceptions.RequestException, ValueError) as e:
            logger.error(f"[REMOTE] Token refresh error: {e}")
            return False

        new_access_token = tokens.get('access_token') if isinstance(tokens, dict) else None
        if not new_access_token:
            logger.error(f"[REMOTE] Token refresh failed: {response.status_code}")
            return False

        self.set_auth_token(new_access_token)
        self.refresh_token = tokens.get('refresh_token') or self.refresh_token
        if self.on_token_refreshed:
            self.on_token_refreshed(new_access_token, self.refresh_token)
        logger.success("[REMOTE] Access token refreshed")
        return True

    def _request_with_retry(self, method: str, url: str, **kwargs) -> requests.Response:
        """Request HTTP; po 401 jedno odświeżenie tokena i ponowienie"""
        kwargs.setdefault('timeout', self.timeout)
        response = self.session.request(method, url, **kwargs)

        if response.status_code == 401 and self.refresh_token:
            logger.info("[REMOTE] Got 401 Unauthorized, attempting token refresh...")
            if self._try_refresh_token():
                response = self.session.request(method, url, **kwargs)

        return response

    @staticmethod
    def _postgrest_error(response: requests.Response, fallback: str) -> str:
        """Komunikat z ciała błędu PostgREST ({"message": ...})"""
        try:
            body = response.json()
        except ValueError:
            return fallback
        if isinstance(body, dict) and body.get('message'):
            return body['message']
        return fallback

    def _handle_response(self, response: requests.Response) -> APIResponse:
        try:
            response.raise_for_status()
        except requests.exceptions.HTTPError as e:
            error_message = self._postgrest_error(response, str(e))
            logger.error(f"[REMOTE] HTTP {response.status_code}: {error_message}")
            return APIResponse(success=False, error=error_message, status_code=response.status_code)

        try:
            data = response.json() if response.content else None
        except ValueError as e:
            logger.error(f"[REMOTE] Invalid JSON in response: {e}")
            return APIResponse(success=False, error=str(e), status_code=response.status_code)

        return APIResponse(success=True, data=data, status_code=response.status_code)

    def _table_url(self, table: str) -> str:
        return f"{self.base_url}/rest/v1/{table}"

    # =========================================================================
    # OPERACJE NA WIERSZU UŻYTKOWNIKA
    # =========================================================================

    def fetch_row(self, table: str, user_id: str) -> APIResponse:
        """
        Pobierz kolumnę `data` wiersza użytkownika.

        Returns:
            APIResponse z data = dict (wiersz istnieje) albo None (brak wiersza)
        """
        try:
            response = self._request_with_retry(
                'GET',
                self._table_url(table),
                params={'user_id': f'eq.{user_id}', 'select': 'data'},
            )
            result = self._handle_response(response)
            if not result.success:
                return result

            rows = result.data or []
            row_data = rows[0].get('data') if rows else None
            logger.debug(f"[REMOTE] Fetched {table} for {user_id}: {'found' if row_data else 'empty'}")
            return APIResponse(success=True, data=row_data, status_code=result.status_code)

        except requests.exceptions.RequestException as e:
            logger.error(f"[REMOTE] Network error fetching {table}: {e}")
            return APIResponse(success=False, error=str(e))

    def upsert_row(self, table: str, user_id: str, data: Dict[str, Any]) -> APIResponse:
        """
        Zapisz dokument użytkownika (insert albo update po user_id).

        Args:
            table: Nazwa tabeli
            user_id: ID użytkownika
            data: Dokument JSON (bez pól przejściowych)
        """
        payload = {
            'user_id': user_id,
            'data': data,
            'updated_at': datetime.now(timezone.utc).isoformat(),
        }

        try:
            response = self._request_with_retry(
                'POST',
                self._table_url(table),
                params={'on_conflict': 'user_id'},
                json=payload,
                headers={'Prefer': 'resolution=merge-duplicates,return=minimal'},
            )
            result = self._handle_response(response)
            if result.success:
                logger.debug(f"[REMOTE] Upserted {table} for {user_id}")
            return result

        except requests.exceptions.RequestException as e:
            logger.error(f"[REMOTE] Network error upserting {table}: {e}")
            return APIResponse(success=False, error=str(e))

    def delete_row(self, table: str, user_id: str) -> APIResponse:
        """Usuń wiersz użytkownika"""
        try:
            response = self._request_with_retry(
                'DELETE',
                self._table_url(table),
                params={'user_id': f'eq.{user_id}'},
            )
            result = self._handle_response(response)
            if result.success:
                logger.info(f"[REMOTE] Deleted {table} row for {user_id}")
            return result

        except requests.exceptions.RequestException as e:
            logger.error(f"[REMOTE] Network error deleting {table}: {e}")
            return APIResponse(success=False, error=str(e))


def create_api_client(
    base_url: Optional[str] = None,
    api_key: Optional[str] = None,
    auth_token: Optional[str] = None,
    refresh_token: Optional[str] = None,
    on_token_refreshed: Optional[Callable[[str, str], None]] = None
) -> RemoteAPIClient:
    """
    Factory function dla tworzenia API client.

    Brakujące parametry są brane z konfiguracji aplikacji.
    """
    from .config import config

    return RemoteAPIClient(
        base_url=base_url or config.REMOTE_API_URL,
        api_key=api_key or config.REMOTE_API_KEY,
        auth_token=auth_token,
        refresh_token=refresh_token,
        on_token_refreshed=on_token_refreshed,
        timeout=config.REQUEST_TIMEOUT,
    )


def is_network_available() -> bool:
    """Sprawdź dostępność sieci (prosty check)"""
    try:
        with socket.create_connection(("8.8.8.8", 53), timeout=3):
            return True
    except OSError:
        return False
