"""
HomeOps Reminders — Entry Point.

Single entry point: `python main.py` starts the Telegram reminder bot.
"""

from src.bot.telegram_bot import main

if __name__ == "__main__":
    main()
