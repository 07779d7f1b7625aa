"""
Subscription billing and reminder engine.

This package contains:
- Shared configuration, errors and utilities (`subtrack.core`)
- Data models and the backend REST client (`subtrack.db`)
- Billing math, due-date classification, lifecycle, reminders and analytics (`subtrack.engine`)
- Reminder runner built on APScheduler with Telegram delivery (`subtrack.bot`)
"""
