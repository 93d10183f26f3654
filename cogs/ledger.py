# cogs/ledger.py
from __future__ import annotations

import asyncio
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import aiofiles
import aiofiles.os

# JSON layout:
# {
#   "<guild_id>": {
#     "total":  int,
#     "users":  { "<user_id>": {"name": str, "total": int}, ... },
#     "ledger": [ {"ts", "actorId", "actorName", "amount", "note", "type"}, ... ]
#   }, ...
# }

logger = logging.getLogger(__name__)

DEFAULT_PATH = "data.json"

DONATION = "donation"
REFUND = "refund"
PURCHASE = "purchase"
FLUSH = "flush"


# ------------ errors ------------
class LedgerError(Exception):
    """A ledger rule was broken. The message is safe to show to the caller."""


class NoContributionError(LedgerError):
    def __init__(self, guild_id: str, user_id: str):
        super().__init__("No recorded contributions found for you in this guild.")
        self.guild_id = guild_id
        self.user_id = user_id


class InvalidAmountError(LedgerError):
    def __init__(self, amount: int, what: str = "Amount"):
        super().__init__(f"{what} amount must be a positive integer.")
        self.amount = amount


class InsufficientBalanceError(LedgerError):
    def __init__(self, message: str, requested: int, available: int):
        super().__init__(message)
        self.requested = requested
        self.available = available


class NoGuildDataError(LedgerError):
    def __init__(self, guild_id: str, message: str = "No guild data to flush."):
        super().__init__(message)
        self.guild_id = guild_id


class StorageError(Exception):
    """Reading or writing the ledger file failed."""

    def __init__(self, message: str, path: str):
        super().__init__(message)
        self.path = path


# ------------ records ------------
@dataclass(frozen=True)
class Totals:
    guild_total: int
    user_total: Optional[int] = None


@dataclass(frozen=True)
class LeaderboardRow:
    user_id: str
    name: str
    total: int


@dataclass(frozen=True)
class LedgerEntry:
    ts: str
    actor_id: str
    actor_name: str
    amount: int
    note: str
    type: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ts": self.ts,
            "actorId": self.actor_id,
            "actorName": self.actor_name,
            "amount": self.amount,
            "note": self.note,
            "type": self.type,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "LedgerEntry":
        # older files keyed the actor as userId/username or adminId/adminName
        actor_id = d.get("actorId", d.get("userId", d.get("adminId", "")))
        actor_name = d.get("actorName", d.get("username", d.get("adminName", "")))
        return cls(
            ts=str(d.get("ts", "")),
            actor_id=str(actor_id),
            actor_name=str(actor_name),
            amount=int(d.get("amount", 0)),
            note=str(d.get("note", "") or ""),
            type=str(d.get("type", "")),
        )


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _entry(kind: str, actor_id: str, actor_name: str, amount: int, note: str) -> Dict[str, Any]:
    return LedgerEntry(_now_iso(), actor_id, actor_name, amount, note or "", kind).to_dict()


def _new_guild() -> Dict[str, Any]:
    return {"total": 0, "users": {}, "ledger": []}


def _guild(data: Dict[str, Any], gid: str) -> Dict[str, Any]:
    g = data.setdefault(gid, _new_guild())
    g.setdefault("total", 0)
    g.setdefault("users", {})
    g.setdefault("ledger", [])
    return g


# ------------ store ------------
class LedgerStore:
    """Per-guild deposit ledger kept in one JSON file.

    Every mutation reloads the whole document, changes it in memory and
    writes it back through a temp file. Mutations on the same store are
    serialized by an asyncio.Lock; other processes writing the same file
    are not coordinated with.
    """

    def __init__(self, path: str = DEFAULT_PATH):
        self.path = path
        self._lock = asyncio.Lock()

    # --- raw document I/O ---
    async def load(self) -> Dict[str, Any]:
        """Read the whole document. A missing file is an empty ledger."""
        if not await aiofiles.os.path.exists(self.path):
            return {}
        try:
            async with aiofiles.open(self.path, "r", encoding="utf-8") as f:
                raw = await f.read()
        except OSError as e:
            raise StorageError(f"could not read {self.path}: {e}", self.path) from e
        if not raw.strip():
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise StorageError(f"{self.path} is not valid JSON: {e}", self.path) from e
        if not isinstance(data, dict):
            raise StorageError(f"{self.path} does not hold a JSON object", self.path)
        return data

    async def save(self, data: Dict[str, Any]) -> None:
        """Atomic save to disk."""
        tmp = self.path + ".tmp"
        try:
            folder = os.path.dirname(self.path)
            if folder:
                await aiofiles.os.makedirs(folder, exist_ok=True)
            async with aiofiles.open(tmp, "w", encoding="utf-8") as f:
                await f.write(json.dumps(data, ensure_ascii=False, indent=2))
            await aiofiles.os.replace(tmp, self.path)
        except (OSError, TypeError, ValueError) as e:
            raise StorageError(f"could not write {self.path}: {e}", self.path) from e

    # --- mutations ---
    async def add_donation(self, guild_id, user_id, display_name: str, amount: int, note: str = "") -> Totals:
        gid, uid = str(guild_id), str(user_id)
        amount = int(amount)
        async with self._lock:
            data = await self.load()
            g = _guild(data, gid)
            g["total"] = int(g["total"]) + amount
            user = g["users"].setdefault(uid, {"name": display_name, "total": 0})
            user["name"] = display_name
            user["total"] = int(user.get("total", 0)) + amount
            g["ledger"].append(_entry(DONATION, uid, display_name, amount, note))
            await self.save(data)
        logger.info("donation guild=%s user=%s amount=%d guild_total=%d", gid, uid, amount, g["total"])
        return Totals(g["total"], user["total"])

    async def refund_donation(self, guild_id, user_id, display_name: str, amount: int, note: str = "") -> Totals:
        gid, uid = str(guild_id), str(user_id)
        amount = int(amount)
        async with self._lock:
            data = await self.load()
            g = data.get(gid)
            if not g or uid not in (g.get("users") or {}):
                raise NoContributionError(gid, uid)
            if amount <= 0:
                raise InvalidAmountError(amount, "Refund")
            g = _guild(data, gid)
            user = g["users"][uid]
            available = int(user.get("total", 0))
            if amount > available:
                raise InsufficientBalanceError(
                    "Refund amount exceeds your contributed total.", amount, available
                )
            # purchases debit only the guild total, so it can be below the user's share
            deposit = int(g["total"])
            if amount > deposit:
                raise InsufficientBalanceError(
                    "Refund amount exceeds what is left in the guild deposit.", amount, deposit
                )
            user["total"] = available - amount
            g["total"] = deposit - amount
            g["ledger"].append(_entry(REFUND, uid, display_name, -amount, note))
            await self.save(data)
        logger.info("refund guild=%s user=%s amount=%d guild_total=%d", gid, uid, amount, g["total"])
        return Totals(g["total"], user["total"])

    async def admin_buy(self, guild_id, admin_id, admin_name: str, amount: int, note: str = "") -> Totals:
        """Pay for a purchase out of the guild deposit. User totals are left alone."""
        gid, aid = str(guild_id), str(admin_id)
        amount = int(amount)
        if amount <= 0:
            raise InvalidAmountError(amount, "Purchase")
        async with self._lock:
            data = await self.load()
            if gid not in data:
                raise NoGuildDataError(gid, "No guild deposit exists or insufficient funds.")
            g = _guild(data, gid)
            total = int(g["total"])
            if amount > total:
                raise InsufficientBalanceError(
                    "Not enough guild deposit to cover this purchase.", amount, total
                )
            g["total"] = total - amount
            g["ledger"].append(_entry(PURCHASE, aid, admin_name, -amount, note))
            await self.save(data)
        logger.info("purchase guild=%s admin=%s amount=%d guild_total=%d", gid, aid, amount, g["total"])
        return Totals(g["total"])

    async def flush_guild(self, guild_id, admin_id, admin_name: str, note: str = "") -> Totals:
        """Zero the guild deposit and every member's contribution."""
        gid, aid = str(guild_id), str(admin_id)
        async with self._lock:
            data = await self.load()
            if gid not in data:
                raise NoGuildDataError(gid)
            g = _guild(data, gid)
            previous = int(g["total"])
            # logged even when the deposit is already empty
            g["ledger"].append(_entry(FLUSH, aid, admin_name, -previous, note))
            g["total"] = 0
            for user in g["users"].values():
                user["total"] = 0
            await self.save(data)
        logger.info("flush guild=%s admin=%s flushed=%d", gid, aid, previous)
        return Totals(0)

    # --- reads ---
    async def get_guild_total(self, guild_id) -> int:
        g = (await self.load()).get(str(guild_id)) or {}
        return int(g.get("total", 0) or 0)

    async def get_user_total(self, guild_id, user_id) -> int:
        g = (await self.load()).get(str(guild_id)) or {}
        user = (g.get("users") or {}).get(str(user_id)) or {}
        return int(user.get("total", 0) or 0)

    async def get_leaderboard(self, guild_id) -> List[LeaderboardRow]:
        """Contributors with a positive total, biggest first; ties keep join order."""
        g = (await self.load()).get(str(guild_id)) or {}
        rows = [
            LeaderboardRow(uid, str(u.get("name", "")), int(u.get("total", 0) or 0))
            for uid, u in (g.get("users") or {}).items()
        ]
        rows = [r for r in rows if r.total > 0]
        return sorted(rows, key=lambda r: r.total, reverse=True)

    async def get_history(self, guild_id, limit: int = 10) -> List[LedgerEntry]:
        """Most recent ledger entries, newest first."""
        if limit <= 0:
            return []
        g = (await self.load()).get(str(guild_id)) or {}
        entries = g.get("ledger") or []
        return [LedgerEntry.from_dict(e) for e in reversed(entries[-limit:])]
