"""Datastore and dataset layer.

This module registers datastores, versions dataset definitions, and
materializes their files. It powers the SDK handles and run inputs.
"""
