"""
Reminder runner: APScheduler trigger store, periodic resync and Telegram delivery.
"""
