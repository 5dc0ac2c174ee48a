"""Experiment and run layer.

This module submits scripts with dataset inputs and records their
lifecycle, metrics, and logs under the workspace.
"""
