"""
Backend Scripts Module

This module contains utility scripts for workflow definitions and client state.

Available scripts:
    - validate_workflow.py: Analyzes and validates a workflow definition file
    - migrate_clients.py: Imports legacy client records into the state store

Usage:
    python -m scripts.validate_workflow data/workflows/corporate_onboarding_v1.yaml
    python -m scripts.migrate_clients
"""
