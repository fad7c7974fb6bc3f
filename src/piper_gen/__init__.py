"""
piper-gen: build embeddable piper voice and engine packages.

Downloads voice models and engine distributions, repackages them into a
deterministic tar.zst archive and generates a Go module around it.
"""
__version__ = "0.1.0"
