"""
Command line interface for the Compliance Engine.
"""
