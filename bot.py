# bot.py — Guild Deposit bot: AUEC donations, refunds, admin purchases and flushes per guild
from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Optional

import discord
from discord.ext import commands
from dotenv import load_dotenv

from cogs.admin import sync_guild_commands

# --- ENV LOADING ---
# .env next to bot.py; override=True ensures the .env wins if something else is set
ENV_PATH = Path(__file__).with_name(".env")
load_dotenv(dotenv_path=ENV_PATH, override=True)


def _env_int(name: str) -> Optional[int]:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        raise RuntimeError(f"{name} must be a numeric Discord id, got {raw!r}.") from None


TOKEN = os.getenv("DISCORD_TOKEN")
if not TOKEN:
    raise RuntimeError(
        "DISCORD_TOKEN is not set. "
        "Create a .env next to bot.py (DISCORD_TOKEN=...) or set the environment variable."
    )
CLIENT_ID = _env_int("CLIENT_ID")     # application id
GUILD_ID = _env_int("GUILD_ID")       # guild that gets the slash commands
LEDGER_PATH = os.getenv("LEDGER_PATH", "data.json")
CURRENCY = os.getenv("CURRENCY", "AUEC")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
# ----------------------------------------

COMMAND_PREFIX = "!"
EXTENSIONS = ("cogs.deposit", "cogs.admin")

intents = discord.Intents.default()
intents.guilds = True
intents.members = True
intents.messages = True
intents.message_content = True

logger = logging.getLogger("deposit_bot")


# ---------- Bot subclass ----------
class Bot(commands.Bot):
    def __init__(self, *, sync_only: bool = False, **kwargs):
        super().__init__(**kwargs)
        # read by the cogs' setup()
        self.ledger_path = LEDGER_PATH
        self.currency = CURRENCY
        self.sync_only = sync_only

    async def setup_hook(self):
        for ext in EXTENSIONS:
            await self.load_extension(ext)
        if GUILD_ID is not None:
            await sync_guild_commands(self, discord.Object(id=GUILD_ID))
        elif self.sync_only:
            raise RuntimeError("GUILD_ID is not set; nowhere to register commands.")

    async def on_ready(self):
        logger.info("Logged in as %s (%s)", self.user, self.user.id)
        if self.sync_only:
            await self.close()


def make_bot(*, sync_only: bool = False) -> Bot:
    return Bot(
        command_prefix=COMMAND_PREFIX,
        intents=intents,
        application_id=CLIENT_ID,
        sync_only=sync_only,
        help_command=commands.MinimalHelpCommand(),
    )


def run(*, sync_only: bool = False) -> None:
    discord.utils.setup_logging(level=getattr(logging, LOG_LEVEL, logging.INFO), root=True)
    bot = make_bot(sync_only=sync_only)
    try:
        # logging is already configured above
        bot.run(TOKEN, log_handler=None)
    except discord.LoginFailure:
        logger.critical("Failed to login: check DISCORD_TOKEN.")
        sys.exit(1)
    except discord.HTTPException:
        logger.critical("Failed to login.", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    run()
