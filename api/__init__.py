"""
MissionAgent HTTP API.
"""
