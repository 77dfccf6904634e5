"""Server URL helpers."""

from __future__ import annotations

import re

import httpx


def normalize_url(base_url: str, mount_path: str) -> str:
    """Join *base_url* and *mount_path* without duplicating the mount.

    ``normalize_url("http://h:1/", "mcp")`` gives ``http://h:1/mcp``, and a
    base that already ends with the mount path is returned unchanged.
    """
    base = base_url.rstrip("/")
    if not mount_path.startswith("/"):
        mount_path = "/" + mount_path
    if mount_path != "/":
        mount_path = mount_path.rstrip("/")

    try:
        parsed = httpx.URL(base)
    except httpx.InvalidURL:
        return base + mount_path
    if not parsed.scheme or not parsed.host:
        return base + mount_path

    current = parsed.path.rstrip("/")
    if current == mount_path or current.endswith(mount_path):
        return base
    path = re.sub(r"/+", "/", current + mount_path)
    return str(parsed.copy_with(path=path)).rstrip("/")
