"""
The VIEW layer draws: image caches, painting helpers, the draw engine and the
Qt widgets.
"""
