"""
Storage Module
存储模块 - 状态文件与运行快照
"""
from .atomic import atomic_write_json, atomic_write_text, read_json_file
from .json_store import STORE_FILENAME, ReleaseStore, normalize_document
from .snapshot import MANIFEST_FILENAME, RunSnapshot, resolve_run_dir

__all__ = [
    "atomic_write_json",
    "atomic_write_text",
    "read_json_file",
    "STORE_FILENAME",
    "ReleaseStore",
    "normalize_document",
    "MANIFEST_FILENAME",
    "RunSnapshot",
    "resolve_run_dir",
]
