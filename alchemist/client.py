# alchemist/client.py
"""
One client tab: the auth context, translation runtime and language router
that a browser tab would hold, wired over a shared storage. Several tabs in
one process share a single SharedStorage.
"""
from __future__ import annotations
import logging
from typing import Callable, Optional

from supabase import ClientOptions, create_client

from .services.auth_context import AuthContext, SupabaseSessionStore
from .services.broadcast import CrossTabAuthBroadcaster
from .services.language_router import LanguageRouter, Navigator
from .services.notifications import Notifier
from .services.storage import SharedStorage
from .services.translations import CatalogRuntime

logger = logging.getLogger(__name__)


class ClientTab:
    def __init__(
        self,
        storage: SharedStorage,
        navigator: Navigator,
        translation_dir: str,
        supabase_url: str = "",
        supabase_key: str = "",
        supabase_client=None,
        preferred_locale: Optional[str] = None,
        notifier: Optional[Notifier] = None,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.view = storage.view()
        self.notifier = notifier or Notifier()
        if supabase_client is None:
            # token cache lives in the shared storage, like localStorage in a browser
            supabase_client = create_client(supabase_url, supabase_key, options=ClientOptions(storage=self.view))
        self.supabase = supabase_client
        broadcaster = CrossTabAuthBroadcaster(self.view, clock) if clock else CrossTabAuthBroadcaster(self.view)
        self.auth = AuthContext(SupabaseSessionStore(supabase_client), broadcaster, self.notifier)
        self.translations = CatalogRuntime(translation_dir, storage=self.view)
        self.router = LanguageRouter(navigator, self.translations, preferred_locale=preferred_locale)

    def open(self) -> "ClientTab":
        self.auth.init()
        self.router.start()
        logger.debug("tab %s open at %s", self.view.view_id, self.router.navigator.path)
        return self

    def close(self) -> None:
        self.router.dispose()
        self.auth.dispose()
        self.view.close()

    def __enter__(self) -> "ClientTab":
        return self.open()

    def __exit__(self, *exc) -> None:
        self.close()
