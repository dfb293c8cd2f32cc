"""
Scripts Module

Maintenance scripts run from the repository root.

Available scripts:
    - seed_data.py: Creates a sample publishing workflow
    - validate_workflow.py: Checks a workflow graph and prints it
    - run_sweep.py: Cron-style trigger for the scheduled-transition sweep

Usage:
    python -m scripts.seed_data
    python -m scripts.validate_workflow <workflow_id>
    python -m scripts.run_sweep --since 0
"""
