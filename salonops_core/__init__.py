"""
SalonOps Scheduling Core
========================

Appointment scheduling and synchronization core for the salon operations
dashboard.

This package provides:
- Slot conflict detection and recurring series expansion
- Reschedule and cancel actions with POS write-through
- Day-rate chair capacity
- Confirmation workflow for assistant-proposed changes
- HTTP API endpoints
"""

__version__ = "1.0.0"
