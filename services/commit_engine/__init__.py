"""
Commit Engine for Git Chronos.

This service is responsible for:
- Tracking the daily commit quota on disk
- Guaranteeing a single running instance per repository
- Executing file-change-and-commit cycles with bounded retries
- Scheduling commit bursts inside the configured working window
- Coordinating graceful shutdown on termination signals
"""

__version__ = "1.0.0"
__author__ = "Git Chronos Team"
__description__ = "Scheduled, quota-bounded Git commit engine"
