"""
Asset Inventory backend: catalog storage and the preview pipeline.
"""
