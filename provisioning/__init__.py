"""
Freelancer provisioning orchestrator.

Creates, tracks, toggles and tears down a freelancer's account on each
configured external platform, aggregating per-platform outcomes into an
overall onboarding progress that tolerates partial failure.
"""

__version__ = "2.0.0"
