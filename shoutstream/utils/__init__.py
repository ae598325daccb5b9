"""
Player-data codec and process helpers
"""
