"""
Tests package - test suite for eirinix.

Contains:
- unit/: Unit tests for the manager, webhooks, certificates and server
"""
