"""
Billing math, due-date classification, lifecycle, reminders and analytics.

Everything here works on plain lists of `Subscription` fetched fresh per call.
"""
