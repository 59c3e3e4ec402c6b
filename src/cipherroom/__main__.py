"""Allow running with python -m cipherroom."""

from .main import main

if __name__ == "__main__":
    main()
