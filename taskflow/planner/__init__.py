"""Weekly planner — capacity-aware day assignment for open tasks.

Components:
    weekly.py: Pure planning algorithm and plan models
    service.py: Generate / accept plans for the current owner
"""
