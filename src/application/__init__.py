"""Application Layer.

Services that orchestrate the ground domain and its infrastructure adapters
behind a small query surface.
"""
