"""
ClientDesk

A FastAPI service for small practices: client records, treatment sessions
with payment tracking, and appointment scheduling with emailed
confirm/cancel/reschedule links and day-ahead reminders.
"""

__version__ = "1.0.0"
