# ============================================================================
# VERSION - FORENSIC CAPTURE PROVISIONER
# ============================================================================
# EPOCH: 1 - PROVISIONING CORE
# ============================================================================
"""
Version information for the Forensic Capture Provisioner.

This is the single source of truth for the application version.
Updated manually for each release.
"""
# Version format: major.minor.patch
# Criteria for 0.1 - forensic_capture plans and applies against the memory provider
__version__ = "0.1.0"
__version_info__ = tuple(int(x) for x in __version__.split("."))

# Build metadata
BUILD_DATE = "2026-10-17"

EPOCH = 1
CODENAME = "Provisioning Core"
