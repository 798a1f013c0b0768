"""
Batch jobs for the transit core.

These run as standalone Python scripts via cron / Cloud Scheduler,
NOT inside the FastAPI process.

Usage:
    python -m services.transit.jobs.reconcile [--entity NAME] [--repair]
"""
