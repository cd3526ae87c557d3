"""
Matrix build-and-release orchestration: validate a build matrix, compile
every target concurrently, store deterministically named binaries, and
publish them to a release on tag pushes.
"""

__version__ = "0.1.0"
