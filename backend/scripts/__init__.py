"""
Backend Scripts Module

Utility scripts for database setup and maintenance.

Available scripts:
    - seed_data.py: Creates a demo organization with users and workflows

Usage:
    python -m scripts.seed_data
"""
