import logging
import threading
from time import monotonic
from typing import Optional, Any, Callable, List

from config import Settings, get_settings
from errors import InstallationInactive, InstallationNotFound, SyncCancelled, SyncTimeout
from reconciler import Reconciler
from remote_client import RemoteClient
from resolver import resolve
from schemas import Credentials, Installation, PageResult, ResourceKind, SyncRunResult

logger = logging.getLogger(__name__)


class SyncOrchestrator:
    """
    Drives one sync run: resolve credentials, fetch every page in order,
    then reconcile the whole set.

    Fetching is all-or-nothing. If any page fails, the error propagates and
    nothing from this run is written. Reconciling is best-effort per batch.
    There is no retry; calling run() again is always safe.
    """

    def __init__(self, installations, client: RemoteClient, reconciler: Reconciler, settings: Optional[Settings] = None):
        self.installations = installations
        self.client = client
        self.reconciler = reconciler
        self.settings = settings or get_settings()

    def load_installation(self, fluid_id: str) -> Installation:
        installation = self.installations.get_installation(fluid_id)
        if installation is None:
            raise InstallationNotFound(fluid_id)
        if not installation.active:
            raise InstallationInactive(fluid_id)
        return installation

    def _checkpoint(self, cancel: Optional[threading.Event], deadline: Optional[float], timeout: float) -> Callable[[], None]:
        def check():
            if cancel is not None and cancel.is_set():
                raise SyncCancelled("Sync run cancelled")
            if deadline is not None and monotonic() > deadline:
                raise SyncTimeout(timeout)
        return check

    def fetch_all(self, kind: ResourceKind, credentials: Credentials, checkpoint: Callable[[], None]) -> List[Any]:
        records: List[Any] = []
        page = 1
        while True:
            checkpoint()
            result = self.client.fetch_page(
                kind, credentials.endpoints, credentials.token,
                page=page, per_page=self.settings.page_size,
            )
            records.extend(result.records)
            if not result.has_more:
                return records
            page += 1

    def run(
        self,
        fluid_id: str,
        kind: ResourceKind,
        cancel: Optional[threading.Event] = None,
        timeout: Optional[float] = None,
    ) -> SyncRunResult:
        timeout = self.settings.run_timeout if timeout is None else timeout
        deadline = monotonic() + timeout if timeout else None
        checkpoint = self._checkpoint(cancel, deadline, timeout)

        installation = self.load_installation(fluid_id)
        credentials = resolve(installation, self.settings)
        logger.info("Syncing %s for installation %s (%s token)", kind.value, fluid_id, credentials.token_kind)

        records = self.fetch_all(kind, credentials, checkpoint)
        checkpoint()

        result = self.reconciler.reconcile(installation.id, kind, records)
        logger.info("Synced %d %s for installation %s, %d errors", result.synced, kind.value, fluid_id, result.errors)
        return result

    def preview(self, fluid_id: str, kind: ResourceKind, per_page: int = 10) -> PageResult:
        """First page straight from the remote API. Writes nothing."""
        installation = self.load_installation(fluid_id)
        credentials = resolve(installation, self.settings)
        return self.client.fetch_page(kind, credentials.endpoints, credentials.token, page=1, per_page=per_page)
