"""Tailnet Discovery — registry and reachability probing for tailnet services.

Quickstart::

    from tailnet.registry import ReachabilityProber, RegistryService, RegistryStore

    store = RegistryStore.open("data/services.db")
    service = RegistryService(store, ReachabilityProber())
    service.create_or_update_service("100.64.0.1", 8080, "dashboard", "nas")
    status = await service.get_reachability()   # {"100.64.0.1:8080": True}
"""

__version__ = "1.0.0"
