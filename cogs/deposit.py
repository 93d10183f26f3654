# cogs/deposit.py — guild deposit slash commands (/donate /refund /buy /flush /contributed /leaderboard /history)
from __future__ import annotations

import logging
from typing import List, Optional

import discord
from discord import app_commands
from discord.ext import commands

from .ledger import (
    DEFAULT_PATH,
    LedgerEntry,
    LedgerError,
    LedgerStore,
    LeaderboardRow,
    StorageError,
)

logger = logging.getLogger(__name__)

CURRENCY = "AUEC"
LEADERBOARD_MAX_LINES = 25
HISTORY_DEFAULT = 10
HISTORY_MAX = 25
# Discord rejects messages longer than 2000 characters
REPLY_MAX_CHARS = 2000
NOTE_MAX_CHARS = 500
HISTORY_NOTE_MAX_CHARS = 80

ADMIN_ONLY = "Only admins can use this command."

# shown instead of storage errors, which may carry paths
FAILURE_MESSAGES = {
    "donate": "Failed to record donation. Try again later.",
    "refund": "Failed to process refund.",
    "buy": "Failed to record purchase.",
    "flush": "Failed to flush guild deposit.",
    "contributed": "Failed to retrieve contribution data.",
    "leaderboard": "Failed to retrieve leaderboard data.",
    "history": "Failed to retrieve ledger history.",
}
GENERIC_FAILURE = "Something went wrong. Try again later."


class ValidationError(Exception):
    """Bad command arguments, caught before the ledger is touched."""


# ---------- helpers ----------
def display_name_of(interaction: discord.Interaction) -> str:
    """Member nickname when there is one, else the account name."""
    user = interaction.user
    return getattr(user, "display_name", None) or user.name


def is_admin(interaction: discord.Interaction) -> bool:
    perms = getattr(interaction, "permissions", None)
    return bool(perms and perms.administrator)


def require_amount(amount: Optional[int], message: str) -> int:
    if amount is None or int(amount) <= 0:
        raise ValidationError(message)
    return int(amount)


def require_note(note: Optional[str], message: str) -> str:
    if note is None or not note.strip():
        raise ValidationError(message)
    return note


def clip(text: str, limit: int = NOTE_MAX_CHARS) -> str:
    """Shorten user text echoed back in a reply."""
    return text if len(text) <= limit else text[:limit - 1] + "…"


# ---------- reply formatting ----------
def fmt_donation(name: str, amount: int, user_total: int, guild_total: int, note: str = "", currency: str = CURRENCY) -> str:
    reply = (f"Recorded {amount} {currency} from **{name}.**\n"
             f"Your total: {user_total} {currency}\n"
             f"Guild deposit total: {guild_total} {currency}")
    if note:
        reply += f"\nNote: **{clip(note)}**"
    return reply


def fmt_refund(name: str, amount: int, user_total: int, guild_total: int, note: str = "", currency: str = CURRENCY) -> str:
    reply = (f"Refunded {amount} {currency} for **{name}**.\n"
             f"Your total: {user_total} {currency}\n"
             f"Guild deposit total: {guild_total} {currency}")
    if note:
        reply += f"\nNote: **{clip(note)}**"
    return reply


def fmt_purchase(name: str, amount: int, note: str, guild_total: int, currency: str = CURRENCY) -> str:
    return (f"Recorded purchase of {amount} {currency} by **{name}**.\n"
            f"**Bought: {clip(note)}**\n"
            f"Guild deposit total: {guild_total} {currency}")


def fmt_flush(name: str, note: str, guild_total: int, currency: str = CURRENCY) -> str:
    return (f"Flushed guild deposit by **{name}**.\n"
            f"Reason: **{clip(note)}**\n"
            f"Guild deposit total: {guild_total} {currency}")


def fmt_contributed(name: str, user_total: int, guild_total: int, currency: str = CURRENCY) -> str:
    return (f"**{name}**, you have contributed **{user_total}** {currency}.\n"
            f"Guild deposit total: **{guild_total}** {currency}")


def fmt_leaderboard(rows: List[LeaderboardRow], guild_total: int, currency: str = CURRENCY) -> str:
    if not rows:
        return "No contributions recorded yet."
    lines = ["**Guild Deposit Leaderboard**", ""]
    for i, row in enumerate(rows[:LEADERBOARD_MAX_LINES], start=1):
        lines.append(f"{i}. **{row.name}** - {row.total} {currency}")
    if len(rows) > LEADERBOARD_MAX_LINES:
        lines.append(f"…and {len(rows) - LEADERBOARD_MAX_LINES} more.")
    lines += ["", f"**Guild Total: {guild_total} {currency}**"]
    return "\n".join(lines)


def fmt_history(entries: List[LedgerEntry], currency: str = CURRENCY) -> str:
    if not entries:
        return "No ledger entries recorded yet."
    lines = ["**Guild Deposit Ledger** (newest first)", ""]
    size = sum(len(line) + 1 for line in lines)
    for shown, e in enumerate(entries):
        line = f"`{e.ts[:19].replace('T', ' ')}` {e.type} by **{e.actor_name}**: {e.amount:+d} {currency}"
        if e.note:
            line += f" ({clip(e.note, HISTORY_NOTE_MAX_CHARS)})"
        # keep room for the "…and N more." tail
        if size + len(line) + 1 > REPLY_MAX_CHARS - 40:
            lines.append(f"…and {len(entries) - shown} more.")
            break
        lines.append(line)
        size += len(line) + 1
    return "\n".join(lines)


# ---------- Cog ----------
class Deposit(commands.Cog, name="Deposit"):
    """🏦 Guild deposit: donations, refunds, admin purchases and flushes."""

    def __init__(self, bot: commands.Bot, store: LedgerStore, *, currency: str = CURRENCY):
        self.bot = bot
        self.store = store
        self.currency = currency

    async def _fail(self, interaction: discord.Interaction, command: str, err: Exception) -> None:
        if isinstance(err, (ValidationError, LedgerError)):
            logger.debug("/%s rejected guild=%s user=%s: %s", command, interaction.guild_id, interaction.user.id, err)
            message = str(err)
        else:
            logger.error("/%s failed guild=%s user=%s", command, interaction.guild_id, interaction.user.id, exc_info=err)
            message = FAILURE_MESSAGES.get(command, GENERIC_FAILURE)
        await interaction.response.send_message(message, ephemeral=True)

    # ---------- handlers ----------
    async def _cmd_donate(self, interaction: discord.Interaction, amount: Optional[int], note: Optional[str]):
        note = note or ""
        try:
            amount = require_amount(amount, f"Please provide a positive amount of {self.currency}.")
            name = display_name_of(interaction)
            result = await self.store.add_donation(interaction.guild_id, interaction.user.id, name, amount, note)
        except (ValidationError, LedgerError, StorageError) as e:
            return await self._fail(interaction, "donate", e)
        await interaction.response.send_message(
            fmt_donation(name, amount, result.user_total, result.guild_total, note, self.currency)
        )

    async def _cmd_refund(self, interaction: discord.Interaction, amount: Optional[int], note: Optional[str]):
        note = note or ""
        try:
            amount = require_amount(amount, f"Please provide a positive amount of {self.currency} to refund.")
            name = display_name_of(interaction)
            result = await self.store.refund_donation(interaction.guild_id, interaction.user.id, name, amount, note)
        except (ValidationError, LedgerError, StorageError) as e:
            return await self._fail(interaction, "refund", e)
        await interaction.response.send_message(
            fmt_refund(name, amount, result.user_total, result.guild_total, note, self.currency)
        )

    async def _cmd_buy(self, interaction: discord.Interaction, amount: Optional[int], note: Optional[str]):
        if not is_admin(interaction):
            return await interaction.response.send_message(ADMIN_ONLY, ephemeral=True)
        try:
            amount = require_amount(amount, f"Please provide a positive amount of {self.currency}.")
            note = require_note(note, "Please provide a note describing what was bought.")
            name = display_name_of(interaction)
            result = await self.store.admin_buy(interaction.guild_id, interaction.user.id, name, amount, note)
        except (ValidationError, LedgerError, StorageError) as e:
            return await self._fail(interaction, "buy", e)
        await interaction.response.send_message(fmt_purchase(name, amount, note, result.guild_total, self.currency))

    async def _cmd_flush(self, interaction: discord.Interaction, note: Optional[str]):
        if not is_admin(interaction):
            return await interaction.response.send_message(ADMIN_ONLY, ephemeral=True)
        try:
            note = require_note(note, "Please provide a reason / note for the flush.")
            name = display_name_of(interaction)
            result = await self.store.flush_guild(interaction.guild_id, interaction.user.id, name, note)
        except (ValidationError, LedgerError, StorageError) as e:
            return await self._fail(interaction, "flush", e)
        await interaction.response.send_message(fmt_flush(name, note, result.guild_total, self.currency))

    async def _cmd_contributed(self, interaction: discord.Interaction):
        try:
            name = display_name_of(interaction)
            user_total = await self.store.get_user_total(interaction.guild_id, interaction.user.id)
            guild_total = await self.store.get_guild_total(interaction.guild_id)
        except StorageError as e:
            return await self._fail(interaction, "contributed", e)
        await interaction.response.send_message(fmt_contributed(name, user_total, guild_total, self.currency))

    async def _cmd_leaderboard(self, interaction: discord.Interaction):
        try:
            rows = await self.store.get_leaderboard(interaction.guild_id)
            guild_total = await self.store.get_guild_total(interaction.guild_id) if rows else 0
        except StorageError as e:
            return await self._fail(interaction, "leaderboard", e)
        await interaction.response.send_message(fmt_leaderboard(rows, guild_total, self.currency))

    async def _cmd_history(self, interaction: discord.Interaction, limit: Optional[int]):
        if not is_admin(interaction):
            return await interaction.response.send_message(ADMIN_ONLY, ephemeral=True)
        limit = max(1, min(HISTORY_MAX, limit or HISTORY_DEFAULT))
        try:
            entries = await self.store.get_history(interaction.guild_id, limit)
        except StorageError as e:
            return await self._fail(interaction, "history", e)
        await interaction.response.send_message(fmt_history(entries, self.currency), ephemeral=True)

    # ================== Slash Commands ==================
    @app_commands.guild_only()
    @app_commands.command(name="donate", description="Donate AUEC to guild deposit")
    @app_commands.describe(amount="Amount of AUEC to donate", note="Optional note")
    async def slash_donate(self, interaction: discord.Interaction, amount: int, note: Optional[str] = None):
        await self._cmd_donate(interaction, amount, note)

    @app_commands.guild_only()
    @app_commands.command(name="refund", description="Refund AUEC from your own contributions")
    @app_commands.describe(
        amount="Amount of AUEC to refund (must not exceed your contributed total)",
        note="Optional note for the refund",
    )
    async def slash_refund(self, interaction: discord.Interaction, amount: int, note: Optional[str] = None):
        await self._cmd_refund(interaction, amount, note)

    @app_commands.guild_only()
    @app_commands.command(name="buy", description="Record a purchase paid from the guild deposit (admin only)")
    @app_commands.describe(amount="Amount of AUEC spent", note="What was bought (required)")
    async def slash_buy(self, interaction: discord.Interaction, amount: int, note: str):
        await self._cmd_buy(interaction, amount, note)

    @app_commands.guild_only()
    @app_commands.command(name="flush", description="Flush (clear) the guild deposit and reset contributions (admin only)")
    @app_commands.describe(note="Reason / description for the flush (required)")
    async def slash_flush(self, interaction: discord.Interaction, note: str):
        await self._cmd_flush(interaction, note)

    @app_commands.guild_only()
    @app_commands.command(name="contributed", description="Check your contribution total to the guild deposit")
    async def slash_contributed(self, interaction: discord.Interaction):
        await self._cmd_contributed(interaction)

    @app_commands.guild_only()
    @app_commands.command(name="leaderboard", description="View the top contributors to the guild deposit")
    async def slash_leaderboard(self, interaction: discord.Interaction):
        await self._cmd_leaderboard(interaction)

    @app_commands.guild_only()
    @app_commands.command(name="history", description="Show recent guild deposit ledger entries (admin only)")
    @app_commands.describe(limit=f"How many entries to show (1-{HISTORY_MAX}, default {HISTORY_DEFAULT})")
    async def slash_history(self, interaction: discord.Interaction, limit: Optional[int] = None):
        await self._cmd_history(interaction, limit)

    async def cog_app_command_error(self, interaction: discord.Interaction, error: app_commands.AppCommandError):
        name = interaction.command.name if interaction.command else "?"
        logger.error("/%s raised guild=%s user=%s", name, interaction.guild_id, interaction.user.id, exc_info=error)
        if interaction.response.is_done():
            await interaction.followup.send(GENERIC_FAILURE, ephemeral=True)
        else:
            await interaction.response.send_message(GENERIC_FAILURE, ephemeral=True)

    # ===== Events =====
    @commands.Cog.listener()
    async def on_message(self, msg: discord.Message):
        if msg.author.bot:
            return
        if msg.content == "hello":
            await msg.reply("Hello there!")


# ---------- setup entry ----------
async def setup(bot: commands.Bot):
    store = LedgerStore(getattr(bot, "ledger_path", DEFAULT_PATH))
    await bot.add_cog(Deposit(bot, store, currency=getattr(bot, "currency", CURRENCY)))
