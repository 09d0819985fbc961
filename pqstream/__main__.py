"""Allow ``python -m pqstream``."""

from .cli import main

if __name__ == "__main__":
    main()
