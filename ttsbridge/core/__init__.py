"""
Core synthesis bridge: capabilities, markup processing, word boundaries,
engine adapters, orchestration and playback.
"""
