"""
Date Utils - operacje na datach kalendarzowych

Daty check-inów to zawsze lokalne daty YYYY-MM-DD (czas lokalny, nigdy UTC),
bo porównania dat sterują przejściami stanów nawyku.
"""
from datetime import date, datetime, timedelta
from typing import Optional, Union
from loguru import logger

DATE_FORMAT = "%Y-%m-%d"


def get_local_date_string(value: Optional[Union[date, datetime]] = None) -> str:
    """
    Zwróć lokalną datę jako YYYY-MM-DD.

    Args:
        value: data/datetime (domyślnie teraz, czas lokalny)
    """
    if value is None:
        value = datetime.now()
    if isinstance(value, datetime):
        if value.tzinfo is not None:
            value = value.astimezone()
        value = value.date()
    return value.strftime(DATE_FORMAT)


def parse_local_date(value: str) -> date:
    """Parsuj YYYY-MM-DD do obiektu date"""
    return datetime.strptime(value, DATE_FORMAT).date()


def add_days(date_str: str, days: int) -> str:
    """Przesuń datę YYYY-MM-DD o podaną liczbę dni"""
    return get_local_date_string(parse_local_date(date_str) + timedelta(days=days))


def get_yesterday(today: Optional[str] = None) -> str:
    return add_days(today or get_local_date_string(), -1)


def days_between(start: str, end: str) -> int:
    """Liczba dni kalendarzowych od start do end (ujemna gdy end < start)"""
    return (parse_local_date(end) - parse_local_date(start)).days


def now_iso() -> str:
    """Aktualny znacznik czasu ISO ze strefą lokalną"""
    return datetime.now().astimezone().isoformat()


def parse_datetime_field(value: Union[str, datetime, None]) -> Optional[datetime]:
    """
    Uniwersalna funkcja do parsowania pól datetime.

    Wynik jest zawsze świadomy strefy (naiwne wartości traktujemy jako
    czas lokalny), żeby dało się je porównywać między sobą.

    Args:
        value: String ISO, obiekt datetime lub None

    Returns:
        datetime object lub None
    """
    if value is None:
        return None

    if isinstance(value, datetime):
        return value.astimezone()

    if isinstance(value, str):
        try:
            # Handle ISO format with 'Z' (UTC)
            value_clean = value.replace('Z', '+00:00')
            return datetime.fromisoformat(value_clean).astimezone()
        except (ValueError, AttributeError) as e:
            logger.warning(f"[DATES] Failed to parse datetime: {value}, error: {e}")
            return None

    return None
