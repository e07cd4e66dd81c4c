"""
Core CLI functionality package

This package contains the core functionality for the dx CLI:
- scanner: Project discovery below the search roots
- config_loader: project.yaml / package.json loading and classification
- backup: Zip archive backup and restore
- undo_ledger: Single-slot record of the last deletion
- delete_workflow: Safe delete state machine and undo
- cleaner: Removal of dependencies, caches and build output
- prompts: Interactive select/text/confirm prompts
- errors: Custom exception classes
"""

__version__ = "1.0.0"
