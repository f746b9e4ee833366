from typing import Optional


class SyncError(Exception):
    """Base class for everything the sync engine raises."""


class InstallationNotFound(SyncError):
    def __init__(self, installation_id: str):
        super().__init__(f"Installation not found: {installation_id}")
        self.installation_id = installation_id


class InstallationInactive(SyncError):
    def __init__(self, installation_id: str):
        super().__init__(f"Installation is inactive: {installation_id}")
        self.installation_id = installation_id


class MissingShopDomain(SyncError):
    def __init__(self, installation_id: str):
        super().__init__(f"Installation {installation_id} has no shop domain. Reinstall the droplet.")
        self.installation_id = installation_id


class NoUsableCredential(SyncError):
    def __init__(self, installation_id: str):
        super().__init__(f"No authentication token available for installation {installation_id}")
        self.installation_id = installation_id


class AllEndpointsExhausted(SyncError):
    """Every candidate endpoint failed for one page fetch."""

    def __init__(self, resource: str, attempts: int, last_status: Optional[int] = None, last_error: Optional[str] = None):
        detail = f"status {last_status}" if last_status is not None else (last_error or "no response")
        super().__init__(f"All {resource} API endpoints failed after {attempts} attempts. Last: {detail}")
        self.resource = resource
        self.attempts = attempts
        self.last_status = last_status
        self.last_error = last_error


class SyncTimeout(SyncError):
    def __init__(self, timeout: float):
        super().__init__(f"Sync run exceeded {timeout:g}s")
        self.timeout = timeout


class SyncCancelled(SyncError):
    pass
