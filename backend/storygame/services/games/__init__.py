"""Game domain services: mode policy, lobby, turns, completion and cleanup.

This package contains the game orchestration logic imported by the HTTP
routes and CLI commands, keeping transport concerns separated from core
game mechanics.
"""
