# cogs/admin.py
from __future__ import annotations

import logging
import traceback

import discord
from discord.ext import commands

logger = logging.getLogger(__name__)


async def sync_guild_commands(bot: commands.Bot, guild: discord.abc.Snowflake) -> int:
    """Copy the global slash commands onto one guild and sync them. Returns how many were synced."""
    bot.tree.copy_global_to(guild=guild)
    synced = await bot.tree.sync(guild=guild)
    logger.info("synced %d app commands to guild %s", len(synced), guild.id)
    return len(synced)


class Admin(commands.Cog, name="Admin"):
    """⚙️ Owner utilities: reload the deposit cog, sync slash commands."""

    def __init__(self, bot: commands.Bot):
        self.bot = bot

    @commands.command(brief="Reload a cog, e.g. `!reload deposit`", help="Reload a loaded extension. Example: `!reload deposit` or `!reload cogs.deposit`")
    @commands.is_owner()
    async def reload(self, ctx: commands.Context, module: str):
        mod = module if module.startswith("cogs.") else f"cogs.{module}"
        try:
            await self.bot.reload_extension(mod)
            await ctx.send(f"🔁 Reloaded `{mod}`.")
        except commands.ExtensionNotLoaded:
            try:
                await self.bot.load_extension(mod)
                await ctx.send(f"➕ Loaded `{mod}`.")
            except commands.ExtensionError:
                logger.exception("loading %s failed", mod)
                await ctx.send(f"❌ Failed to load `{mod}`:\n```py\n{traceback.format_exc()[-1800:]}\n```")
        except commands.ExtensionError:
            logger.exception("reloading %s failed", mod)
            await ctx.send(f"❌ Failed to reload `{mod}`:\n```py\n{traceback.format_exc()[-1800:]}\n```")

    @commands.command(brief="Sync slash commands", help="Sync application commands to this guild.")
    @commands.is_owner()
    @commands.guild_only()
    async def sync(self, ctx: commands.Context):
        count = await sync_guild_commands(self.bot, ctx.guild)
        await ctx.send(f"✅ Synced {count} application commands for this guild.")


async def setup(bot: commands.Bot):
    await bot.add_cog(Admin(bot))
