"""
Application Errors
Exceptions raised by the POS services and turned into JSON responses by the app
"""


class POSError(Exception):
    """Base class for errors surfaced to the caller"""
    status_code = 400

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self):
        return {'success': False, 'error': self.message}


class ValidationError(POSError):
    """Invalid input such as a negative amount or a missing reason"""
    status_code = 400


class NotFoundError(POSError):
    """Cashier, promotion, product or user does not exist"""
    status_code = 404


class CashierStateError(POSError):
    """Transition not allowed in the cashier's current state"""
    status_code = 409
