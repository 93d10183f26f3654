# register_commands.py — one-shot: log in, register the slash commands on GUILD_ID, log out
from bot import run

if __name__ == "__main__":
    run(sync_only=True)
