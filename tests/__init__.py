"""Test suite for mirako.

Test Structure:
- unit/: Unit tests mirroring packages/mirako (api, config, core, tasks, utils, cli)
- fixtures/: Mock-transport helpers for tests that talk to the Mirako API
- conftest.py: Shared fixtures (isolated HOME and MIRAKO_* environment, test config)
"""
