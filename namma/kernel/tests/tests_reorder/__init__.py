"""
Reorder Reconciler Test Suite

1. test_rank_helpers.py - sort_by_rank / next_rank / rank_changes (pure)
2. test_reconciler.py - debounce, commit, overwrite, create-first scenarios
"""
