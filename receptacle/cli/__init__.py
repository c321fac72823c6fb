"""
Command-line interface for Receptacle Rules.
"""
