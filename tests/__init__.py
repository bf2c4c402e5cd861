"""Test suite for frm.

This package contains tests for:
- Records, serialization and field logic
- Field ordering, option reconciliation and builder updates
- Submission validation
- Draft/publish versioning, short codes and collection against both storage backends
- The draft reaper and its state machine
- Events and settings
"""
