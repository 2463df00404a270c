"""
Wyjątki pakietu Habit Stacker
"""


class HabitStackerError(Exception):
    """Bazowy wyjątek pakietu"""


class HabitValidationError(HabitStackerError, ValueError):
    """Niepoprawna mutacja rekordu nawyku (odrzucana przed zapisem)"""


class CheckInValidationError(HabitValidationError):
    """Check-in łamiący niezmienniki (np. actionTaken bez triggerOccurred)"""

    def __init__(self, message: str, field_name: str = None):
        super().__init__(message)
        self.field_name = field_name
