"""
whatsapp_bridge/services/credential_store.py

Purpose: Durable per-merchant credential material

- One directory per ecommercant under SESSION_DIR
- One <name>.json file per credential entry (opaque to this service)
- Atomic writes so a crash never leaves a half-written entry
- Directory listing drives startup recovery
"""

import asyncio
import json
import os
import shutil
from pathlib import Path
from typing import Any, Dict, List, Optional
from urllib.parse import quote, unquote

import aiofiles
import aiofiles.os

from whatsapp_bridge.core.logging import get_logger

logger = get_logger(__name__)

CREDENTIAL_SUFFIX = ".json"


def _entry_filename(name: str) -> str:
    """Entry names become file names; percent-encoding keeps them inside the
    merchant directory and decodes back to the exact name."""
    return f"{quote(name, safe='')}{CREDENTIAL_SUFFIX}"


def _entry_name(filename: str) -> str:
    return unquote(filename[: -len(CREDENTIAL_SUFFIX)])


class CredentialStore:
    """File-backed credential material, keyed by merchant id."""

    def __init__(self, root: str):
        self.root = Path(root)

    def merchant_dir(self, merchant_id: str) -> Path:
        if not merchant_id or merchant_id in (".", "..") or "/" in merchant_id or "\\" in merchant_id:
            raise ValueError(f"Invalid merchant id: {merchant_id!r}")
        return self.root / merchant_id

    def ensure_root(self):
        self.root.mkdir(parents=True, exist_ok=True)

    async def list_merchants(self) -> List[str]:
        """
        Lists merchants that have persisted credentials.

        Returns:
            Sub-directory names of SESSION_DIR in listing order
        """
        if not await aiofiles.os.path.isdir(self.root):
            return []

        merchants = []
        for name in await aiofiles.os.listdir(self.root):
            if await aiofiles.os.path.isdir(self.root / name):
                merchants.append(name)
        return merchants

    async def exists(self, merchant_id: str) -> bool:
        return await aiofiles.os.path.isdir(self.merchant_dir(merchant_id))

    async def load(self, merchant_id: str) -> Dict[str, Any]:
        """
        Loads all credential entries for a merchant.

        Returns:
            Mapping of entry name to decoded JSON value (empty for a new merchant)
        """
        directory = self.merchant_dir(merchant_id)
        if not await aiofiles.os.path.isdir(directory):
            return {}

        credentials: Dict[str, Any] = {}
        for filename in await aiofiles.os.listdir(directory):
            if not filename.endswith(CREDENTIAL_SUFFIX):
                continue
            async with aiofiles.open(directory / filename, "r", encoding="utf-8") as f:
                raw = await f.read()
            try:
                credentials[_entry_name(filename)] = json.loads(raw)
            except json.JSONDecodeError:
                logger.warning(f"Skipping corrupt credential entry {filename} for {merchant_id}")

        logger.debug(f"Loaded {len(credentials)} credential entries for {merchant_id}")
        return credentials

    async def save(self, merchant_id: str, changes: Dict[str, Optional[Any]]):
        """
        Persists credential changes. A None value deletes the entry.

        Each entry is written to a temp file and moved into place, so readers
        only ever see a complete previous or next version.
        """
        directory = self.merchant_dir(merchant_id)
        await aiofiles.os.makedirs(directory, exist_ok=True)

        for name, value in changes.items():
            target = directory / _entry_filename(name)
            if value is None:
                if await aiofiles.os.path.exists(target):
                    await aiofiles.os.remove(target)
                continue

            tmp = target.with_name(f".{target.name}.tmp")
            async with aiofiles.open(tmp, "w", encoding="utf-8") as f:
                await f.write(json.dumps(value))
                await f.flush()
                await asyncio.to_thread(os.fsync, f.fileno())
            await aiofiles.os.replace(tmp, target)

        logger.debug(f"Saved {len(changes)} credential entries for {merchant_id}")

    async def delete(self, merchant_id: str):
        """Removes the merchant's credential directory; missing is not an error."""
        directory = self.merchant_dir(merchant_id)
        if not await aiofiles.os.path.isdir(directory):
            return
        await asyncio.to_thread(shutil.rmtree, directory)
        logger.info(f"Deleted credentials for {merchant_id}")
