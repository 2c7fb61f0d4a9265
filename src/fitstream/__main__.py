"""
fitstream package entry point.

Allows running fitstream as a module:
    python -m fitstream
"""

from fitstream.cli import main

if __name__ == "__main__":
    main()
