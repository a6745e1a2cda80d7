from ..import_adapter import ImportAdapter
from .media_json import MediaJsonAdapter
from .strong_app import StrongAppAdapter

_adapters: dict[str, ImportAdapter] = {
    adapter.source: adapter for adapter in (StrongAppAdapter(), MediaJsonAdapter())
}


def get_adapter(source: str) -> ImportAdapter | None:
    return _adapters.get(source)


def registered_sources() -> list[str]:
    return list(_adapters.keys())
