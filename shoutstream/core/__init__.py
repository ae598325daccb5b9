"""
Resolver, prober, playback policy and session
"""
