# モジュール読み込み用（Alembicがモデルを見つけるために必要）
# coffee_finder/models/__init__.py
from .base import Base
from .kv_entry import KeyValueEntry
from .shell_cache_entry import ShellCacheEntry

__all__ = [
    "Base",
    "KeyValueEntry",
    "ShellCacheEntry",
]
