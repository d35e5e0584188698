# cabinetpm_sync/central_api/exceptions.py
#
#
#######################################################################################################################
#
# Functions:

class CentralStoreError(Exception):
    """Base exception for central store errors."""
    pass

class CentralConnectionError(CentralStoreError):
    """Raised for network or connection issues reaching the central store."""
    pass

class CentralTimeoutError(CentralConnectionError):
    """Raised when a connect or request timeout elapses."""
    pass

class CentralNotConnectedError(CentralStoreError):
    """Raised when an operation is attempted outside an open session."""
    pass

class CentralRequestError(CentralStoreError):
    """Raised for errors in constructing or sending the request (e.g., bad data)."""
    def __init__(self, message: str, response_data: dict = None):
        super().__init__(message)
        self.response_data = response_data or {}

class CentralResponseError(CentralStoreError):
    """Raised for non-2xx responses or issues parsing the response."""
    def __init__(self, status_code: int, message: str, response_data: dict = None):
        super().__init__(f"Central store error {status_code}: {message}")
        self.status_code = status_code
        self.response_data = response_data or {}

class AuthenticationError(CentralStoreError):
    """Raised for authentication failures."""
    pass

#
# End of cabinetpm_sync/central_api/exceptions.py
########################################################################################################################
