"""
Atlas OS gateway service.
"""
